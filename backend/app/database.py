"""
Configuration de la connexion à la base de données.
PostgreSQL en production, SQLite accepté pour le développement et les tests.
"""

import sqlite3

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

from app.config import settings


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite n'applique les clés étrangères (et donc les ON DELETE CASCADE) qu'avec ce PRAGMA."""
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()


def _connect_args(url: str) -> dict:
    # Les endpoints synchrones de FastAPI tournent dans un threadpool
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(settings.DATABASE_URL, connect_args=_connect_args(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dépendance FastAPI : fournit une session BDD et la ferme après usage."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """
    Crée toutes les tables (et les triggers d'immutabilité du journal des statuts).
    Utilisé uniquement si DB_AUTO_CREATE est activé.
    """
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
