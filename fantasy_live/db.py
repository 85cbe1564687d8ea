# fantasy_live/db.py
import os
import logging
from pathlib import Path
from urllib.parse import urlparse

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

logger = logging.getLogger(__name__)

# Load .env locally; in containers the environment is injected directly
load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")


def database_url() -> str:
    # Prefer a full DATABASE_URL. Fallback to individual parts for local dev.
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    from .settings import settings
    logger.info(
        "DB CONFIG (local fallback) -> user=%s host=%s port=%s db=%s",
        settings.PGUSER, settings.PGHOST, settings.PGPORT, settings.PGDATABASE,
    )
    return (
        f"postgresql://{settings.PGUSER}:{settings.PGPASSWORD}"
        f"@{settings.PGHOST}:{settings.PGPORT}/{settings.PGDATABASE}"
    )


def make_engine(url: str):
    connect_args = {}
    if url.startswith("sqlite"):
        # polls and sweeps run in worker threads
        connect_args["check_same_thread"] = False
        return create_engine(url, connect_args=connect_args)

    # If it's a remote DB (not localhost), enforce SSL
    try:
        parsed = urlparse(url)
        is_local = parsed.hostname in {"localhost", "127.0.0.1"} or parsed.hostname is None
    except ValueError:
        is_local = False
    if not is_local:
        connect_args["sslmode"] = "require"

    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


DATABASE_URL = database_url()
engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
