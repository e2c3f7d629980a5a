from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from urllib.parse import quote
import logging

import config
from models.event import ProviderType
from services.errors import ValidationError
from services.sync_service import SyncService
from routes.session import current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendars", tags=["calendars"])


def init_calendar_routes(oauth_client, sync_service: SyncService):
    account_db = sync_service.account_db
    credential_store = sync_service.credential_store
    google_adapter = sync_service.registry.get(ProviderType.GOOGLE)

    @router.get("/connect/{provider_type}")
    async def connect_calendar(request: Request, provider_type: str, user=Depends(current_user)):
        """Start the OAuth flow for an external calendar"""
        provider_type = provider_type.lower()
        if provider_type == ProviderType.GOOGLE.value:
            if not hasattr(oauth_client, "google"):
                raise ValidationError("Google Calendar is not configured on this server")
            redirect_uri = str(request.url_for("google_calendar_callback"))
            logger.info(f"Starting Google Calendar OAuth flow for user {user['id']}")
            return await oauth_client.google.authorize_redirect(
                request,
                redirect_uri,
                access_type="offline",
                prompt="consent"
            )
        if provider_type == ProviderType.APPLE.value:
            raise ValidationError(
                "Apple Calendar direct OAuth integration is not supported via web APIs. "
                "Consider CalDAV or manual import."
            )
        raise ValidationError("Unsupported calendar type")

    @router.get("/google/callback", name="google_calendar_callback")
    async def google_calendar_callback(request: Request):
        """Handle the Google OAuth callback: store the account and run its first sync"""
        user = request.session.get("user")
        if not user or not user.get("id"):
            logger.error("No user found in session during calendar callback")
            return RedirectResponse(url=f"{config.FRONTEND_URL}/dashboard?error=not_authenticated")

        try:
            token = await oauth_client.google.authorize_access_token(request)
            user_info = await google_adapter.get_user_info(token["access_token"])
            primary_calendar = await google_adapter.get_primary_calendar(token["access_token"])

            owner_email = user_info["email"]
            account = await credential_store.connect_account(
                owner_user_id=user["id"],
                provider_type=ProviderType.GOOGLE,
                owner_email=owner_email,
                external_calendar_id=primary_calendar["id"],
                display_name=user_info.get("name") or owner_email,
                token=token
            )
            logger.info(f"Connected Google account {owner_email} for user {user['id']}")

            await sync_service.sync_account(account.id)
            return RedirectResponse(url=f"{config.FRONTEND_URL}/dashboard?success=true")
        except Exception as e:
            logger.error(f"Google OAuth callback error: {str(e)}")
            return RedirectResponse(
                url=f"{config.FRONTEND_URL}/dashboard?error=calendar_auth_failed&message={quote(str(e))}"
            )

    @router.get("/accounts")
    async def get_calendar_accounts(user=Depends(current_user)):
        """List the caller's connected calendars, without token material"""
        accounts = await account_db.get_user_accounts(user["id"])
        logger.info(f"Retrieved {len(accounts)} accounts for user {user['id']}")
        return [account.public_dict() for account in accounts]

    @router.post("/custom", status_code=201)
    async def create_custom_calendar(user=Depends(current_user)):
        """Get or create the caller's local-only calendar"""
        owner_email = user.get("email") or f"{user['id']}@local"
        account = await account_db.get_or_create_custom_account(user["id"], owner_email)
        return account.public_dict()

    @router.post("/refresh/{account_id}")
    async def refresh_calendar(account_id: str, user=Depends(current_user)):
        """Sync one account now"""
        await sync_service.refresh_account(user["id"], account_id)
        return {"message": "Calendar refresh initiated."}

    return router
