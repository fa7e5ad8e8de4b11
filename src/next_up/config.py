"""Configuration management for next-up."""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Application configuration."""

    # Base paths
    BASE_DIR = Path(__file__).resolve().parent.parent.parent
    DATA_DIR = BASE_DIR / "data"
    LOG_DIR = BASE_DIR / "logs"

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR}/next_up.db")

    # Flask settings
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-in-production")
    FLASK_HOST = os.getenv("FLASK_HOST", "0.0.0.0")
    FLASK_PORT = int(os.getenv("FLASK_PORT", "8080"))
    DEBUG = os.getenv("DEBUG", "False").lower() == "true"

    # Continuation settings
    COUNTDOWN_SECONDS = int(os.getenv("COUNTDOWN_SECONDS", "5"))
    TICK_INTERVAL = float(os.getenv("TICK_INTERVAL", "1.0"))  # seconds per countdown tick
    WATCHED_THRESHOLD = float(os.getenv("WATCHED_THRESHOLD", "0.30"))  # fraction played
    RELATED_LIMIT = int(os.getenv("RELATED_LIMIT", "10"))
    EPISODIC_CATEGORIES = tuple(
        c.strip().upper()
        for c in os.getenv("EPISODIC_CATEGORIES", "SERIES,NOVELAS").split(",")
        if c.strip()
    )

    # Web bridge
    REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "10"))
    HISTORY_LIMIT = int(os.getenv("HISTORY_LIMIT", "50"))

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE = LOG_DIR / "next_up.log"

    @classmethod
    def ensure_directories(cls):
        """Create necessary directories if they don't exist."""
        cls.DATA_DIR.mkdir(parents=True, exist_ok=True)
        cls.LOG_DIR.mkdir(parents=True, exist_ok=True)

config = Config()
