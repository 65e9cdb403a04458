from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.core.config import settings


def get_engine_args(url: str) -> Dict[str, Any]:
    """Get database-specific engine arguments"""
    if not url.startswith("sqlite"):
        return {}
    args: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # In-memory storage must share one connection to keep its data
        args["poolclass"] = StaticPool
    return args


def create_storage_engine(url: Optional[str] = None) -> Engine:
    """Create the engine backing durable client storage"""
    url = url or settings.STORAGE_URL
    if url.startswith("sqlite:///") and url != "sqlite:///:memory:":
        Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, **get_engine_args(url))


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_db_sync(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Get a synchronous DB session with proper resource management"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()
