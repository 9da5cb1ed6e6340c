"""Configuration management."""
import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _optional_float(name: str):
    value = os.getenv(name)
    if not value:
        return None
    return float(value)


class Config:
    """Application configuration."""

    # Storage
    DB_PATH = Path(os.getenv("BOOKSTORE_DB_PATH", str(Path.home() / ".bookstore" / "books.db")))

    # Server
    HOST = os.getenv("BOOKSTORE_HOST", "127.0.0.1")
    PORT = int(os.getenv("BOOKSTORE_PORT", "8000"))
    CORS_ORIGINS = [
        origin.strip()
        for origin in os.getenv("BOOKSTORE_CORS_ORIGINS", "*").split(",")
        if origin.strip()
    ]

    # Client
    API_URL = os.getenv("BOOKSTORE_API_URL", "http://127.0.0.1:8000")
    REQUEST_TIMEOUT = _optional_float("BOOKSTORE_REQUEST_TIMEOUT")

    LOG_LEVEL = os.getenv("BOOKSTORE_LOG_LEVEL", "INFO").upper()
    LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
