from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from authlib.integrations.starlette_client import OAuth
from starlette.middleware.sessions import SessionMiddleware
import asyncio
import logging

import config
from routes import init_routes
from db.mongo import init_db, client, get_db
from services.account_db import AccountDBService
from services.event_db import EventDBService
from services.credential_store import CredentialStore
from services.errors import CalendarSyncError
from services.event_service import EventService
from services.providers.registry import default_registry
from services.scheduler import SyncScheduler
from services.sync_service import SyncService

logger = logging.getLogger(__name__)

app = FastAPI()

if not config.FRONTEND_URL:
    raise RuntimeError("FRONTEND_URL is not set in .env")

if not config.SECRET_KEY:
    raise RuntimeError("SECRET_KEY is not set in .env")

# Simple session middleware
app.add_middleware(
    SessionMiddleware,
    secret_key=config.SECRET_KEY,
    max_age=14 * 24 * 60 * 60,
    same_site="none",
    https_only=True,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Configure OAuth
oauth = OAuth()

if config.GOOGLE_CLIENT_ID and config.GOOGLE_CLIENT_SECRET:
    oauth.register(
        name='google',
        client_id=config.GOOGLE_CLIENT_ID,
        client_secret=config.GOOGLE_CLIENT_SECRET,
        server_metadata_url='https://accounts.google.com/.well-known/openid-configuration',
        client_kwargs={
            'scope': config.GOOGLE_SCOPES,
            'token_endpoint_auth_method': 'client_secret_post'
        }
    )
else:
    logger.warning("Google OAuth credentials not set; calendar connect is disabled")

db_connected = False
sync_scheduler = None


@app.exception_handler(CalendarSyncError)
async def calendar_sync_error_handler(request: Request, exc: CalendarSyncError):
    content = {"message": exc.message}
    if getattr(exc, "reconnect_required", False):
        content["reconnect_required"] = True
    return JSONResponse(status_code=exc.status_code, content=content)


@app.on_event("startup")
async def startup():
    global db_connected, sync_scheduler
    if not client:
        logger.error("Starting without a database; API routes are not mounted")
        return

    await init_db()
    db_connected = True

    database = get_db()
    registry = default_registry()
    account_db = AccountDBService(database)
    event_db = EventDBService(database)
    credential_store = CredentialStore(account_db, registry)
    sync_service = SyncService(account_db, event_db, credential_store, registry)
    event_service = EventService(account_db, event_db, credential_store, registry)

    init_routes(app, oauth, sync_service, event_service)

    sync_scheduler = SyncScheduler(sync_service, asyncio.get_running_loop())
    sync_scheduler.start()


@app.on_event("shutdown")
async def shutdown():
    if sync_scheduler is not None:
        sync_scheduler.stop()


@app.get("/")
async def root():
    return {"status": "ok", "db_connected": db_connected}

# This ensures the app variable is accessible
app = app
