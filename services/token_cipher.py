from typing import Optional
from cryptography.fernet import Fernet, InvalidToken
import logging

import config
from services.errors import CredentialError

logger = logging.getLogger(__name__)


class TokenCipher:
    """Authenticated encryption for provider tokens at rest (Fernet, AES-128-CBC + HMAC)"""

    def __init__(self, key: Optional[str] = None):
        key = key or config.TOKEN_ENCRYPTION_KEY
        if not key:
            raise ValueError("TOKEN_ENCRYPTION_KEY environment variable is not set")
        self._fernet = Fernet(key.encode() if isinstance(key, str) else key)

    def encrypt(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        return self._fernet.encrypt(token.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: Optional[str]) -> Optional[str]:
        if not ciphertext:
            return None
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except InvalidToken:
            logger.error("Stored token failed authentication, account must be reconnected")
            raise CredentialError("Stored credentials could not be decrypted")
