import os

from .utils.time import now_ms


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///local.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    MONITOR_ENABLED = os.getenv("MONITOR_ENABLED", "1") == "1"
    MONITOR_INTERVAL_SECONDS = int(os.getenv("MONITOR_INTERVAL_SECONDS", "60"))
    WARNING_THRESHOLD_MS = int(os.getenv("WARNING_THRESHOLD_MS", "900000"))
    ALERT_DEBOUNCE_MS = int(os.getenv("ALERT_DEBOUNCE_MS", "180000"))
    NOTIFY_WEBHOOK_URL = os.getenv("NOTIFY_WEBHOOK_URL", "")

    CLOCK = now_ms


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    MONITOR_ENABLED = False
    NOTIFY_WEBHOOK_URL = ""
