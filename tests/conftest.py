"""Shared fixtures: an in-memory database, a recording adapter and wired services."""
import os
import sys
from datetime import datetime, timedelta
from pathlib import Path

from cryptography.fernet import Fernet

# Set before config is imported anywhere
os.environ.setdefault("TOKEN_ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.pop("MONGO_URI", None)

root_path = Path(__file__).parent.parent
if str(root_path) not in sys.path:
    sys.path.insert(0, str(root_path))

import pytest  # noqa: E402

import config  # noqa: E402
from models.event import ProviderType  # noqa: E402
from services.account_db import AccountDBService  # noqa: E402
from services.credential_store import CredentialStore  # noqa: E402
from services.event_db import EventDBService  # noqa: E402
from services.event_service import EventService  # noqa: E402
from services.providers.registry import ProviderRegistry  # noqa: E402
from services.providers.unsupported import UnsupportedProviderAdapter  # noqa: E402
from services.sync_service import SyncService  # noqa: E402
from services.token_cipher import TokenCipher  # noqa: E402
from tests.fakes.fake_mongo import FakeDatabase  # noqa: E402
from tests.fakes.fake_provider import FakeProviderAdapter  # noqa: E402

OWNER_ID = "user-1"
OWNER_EMAIL = "owner@example.com"


@pytest.fixture(autouse=True)
def no_retry_delay(monkeypatch):
    monkeypatch.setattr(config, "PROVIDER_RETRY_BASE_DELAY", 0.0)


@pytest.fixture
def database():
    return FakeDatabase()


@pytest.fixture
def cipher():
    return TokenCipher()


@pytest.fixture
def adapter():
    return FakeProviderAdapter(ProviderType.GOOGLE)


@pytest.fixture
def registry(adapter):
    registry = ProviderRegistry()
    registry.register(adapter)
    for provider_type in (ProviderType.OUTLOOK, ProviderType.APPLE, ProviderType.CUSTOM):
        registry.register(UnsupportedProviderAdapter(provider_type))
    return registry


@pytest.fixture
def account_db(database):
    return AccountDBService(database)


@pytest.fixture
def event_db(database):
    return EventDBService(database)


@pytest.fixture
def credential_store(account_db, registry, cipher):
    return CredentialStore(account_db, registry, cipher)


@pytest.fixture
def sync_service(account_db, event_db, credential_store, registry):
    return SyncService(account_db, event_db, credential_store, registry)


@pytest.fixture
def event_service(account_db, event_db, credential_store, registry):
    return EventService(account_db, event_db, credential_store, registry)


@pytest.fixture
def make_account(account_db, cipher):
    """Create a connected account with a live (or, with expired=True, stale) access token"""
    async def _make(
        owner_user_id=OWNER_ID,
        owner_email=OWNER_EMAIL,
        provider_type=ProviderType.GOOGLE,
        access_token="access-1",
        refresh_token="refresh-1",
        expired=False
    ):
        offset = timedelta(minutes=-5) if expired else timedelta(hours=1)
        return await account_db.upsert_connected_account(
            owner_user_id=owner_user_id,
            provider_type=provider_type,
            owner_email=owner_email,
            external_calendar_id="primary",
            display_name=owner_email,
            access_token=cipher.encrypt(access_token),
            refresh_token=cipher.encrypt(refresh_token),
            token_expires_at=datetime.utcnow() + offset
        )
    return _make

