"""
Configuration de la base locale embarquée (SQLite).
Utilise SQLAlchemy avec un moteur synchrone partagé entre les threads du service.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import settings


def build_engine(url: str):
    """
    Crée le moteur SQLAlchemy.
    SQLite : les sessions circulent entre threads (routers + scheduler), et une base
    en mémoire doit garder une connexion unique pour ne pas être perdue.
    """
    kwargs = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


engine = build_engine(settings.LOCAL_DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()
