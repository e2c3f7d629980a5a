from fastapi import FastAPI
from routes.calendar import init_calendar_routes
from routes.events import init_events_routes


def init_routes(app: FastAPI, oauth_client, sync_service, event_service):
    """Initialize all application routes"""
    # Initialize calendar account routes
    calendar_router = init_calendar_routes(oauth_client, sync_service)
    app.include_router(calendar_router)

    # Initialize events routes
    events_router = init_events_routes(event_service)
    app.include_router(events_router)

    return app
