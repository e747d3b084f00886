# Centralised application configuration
# (environment variables, code lifetime, storage and sweep intervals).

import os
class Settings:
    APP_NAME = "AuthLink Pairing Service"
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./authlink.db")
    JWT_SECRET = os.getenv("JWT_SECRET", "dev-change-me")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "authlink-local")
    JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "authlink-mobile")
    CODE_LENGTH = int(os.getenv("CODE_LENGTH", "12"))
    CODE_TTL_SECONDS = int(os.getenv("CODE_TTL_SECONDS", "300")) # 5 Minutes
    ISSUE_MAX_ATTEMPTS = int(os.getenv("ISSUE_MAX_ATTEMPTS", "5"))
    POLL_MIN_INTERVAL_MS = int(os.getenv("POLL_MIN_INTERVAL_MS", "1500"))
    SWEEP_INTERVAL_SECONDS = int(os.getenv("SWEEP_INTERVAL_SECONDS", "60")) # 0 disables the sweeper
    CLAIMED_RETENTION_SECONDS = int(os.getenv("CLAIMED_RETENTION_SECONDS", "3600")) # claimed rows outlive expiry this long
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    EVENT_LOG_FILE = os.getenv("EVENT_LOG_FILE", "")

settings = Settings()
