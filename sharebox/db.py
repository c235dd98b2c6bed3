# Filename: sharebox/db.py
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session
from .config import settings


def create_db_engine(url: str) -> Engine:
    # sqlite connections are shared with the threadpool that runs sync routes
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=False, connect_args=connect_args)


engine = create_db_engine(settings.database_url)


def init_db(bind: Engine = None) -> None:
    """Create the blob store root and all tables."""
    settings.blob_root.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(bind or engine)


def get_session():
    """Yield a DB session (dependency)."""
    with Session(engine) as session:
        yield session
