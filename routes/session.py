from fastapi import HTTPException, Request
from typing import Any, Dict


def current_user(request: Request) -> Dict[str, Any]:
    """
    The verified caller, as placed in the session by the login flow.
    The core trusts user["id"] and re-checks ownership on every operation.
    """
    user = request.session.get("user")
    if not user or not user.get("id"):
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user
