"""
Environment-based configuration for the unified calendar server
"""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# Web / session
FRONTEND_URL = os.getenv("FRONTEND_URL")
SECRET_KEY = os.getenv("SECRET_KEY")

# MongoDB
MONGO_URI = os.getenv("MONGO_URI")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "unified-calendar")
MONGO_TLS = os.getenv("MONGO_TLS", "true").lower() == "true"

# Google OAuth app credentials
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_SCOPES = "openid email profile https://www.googleapis.com/auth/calendar"

# Fernet key (urlsafe base64, 32 bytes) used to encrypt provider tokens at rest
TOKEN_ENCRYPTION_KEY = os.getenv("TOKEN_ENCRYPTION_KEY")

# Zone used when writing timed events to providers
SERVER_TIMEZONE = os.getenv("SERVER_TIMEZONE", "UTC")

# Sync
SYNC_INTERVAL_MINUTES = int(os.getenv("SYNC_INTERVAL_MINUTES", "15"))
SYNC_WINDOW_DAYS = int(os.getenv("SYNC_WINDOW_DAYS", "365"))
SYNC_LEASE_SECONDS = int(os.getenv("SYNC_LEASE_SECONDS", "300"))

# Provider HTTP calls
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "30"))
PROVIDER_MAX_RETRIES = int(os.getenv("PROVIDER_MAX_RETRIES", "2"))
PROVIDER_RETRY_BASE_DELAY = float(os.getenv("PROVIDER_RETRY_BASE_DELAY", "1.0"))
