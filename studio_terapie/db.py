from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

load_dotenv()

# DB SQLite su file nella root del progetto, sovrascrivibile con DATABASE_URL
DB_PATH = Path(__file__).resolve().parents[1] / "studio_terapie.sqlite"
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DB_PATH}")

log = logging.getLogger(__name__)


def _crea_engine(url: str) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        # FastAPI esegue gli endpoint sync in un threadpool
        connect_args["check_same_thread"] = False
    return create_engine(
        url,
        echo=os.getenv("SQL_ECHO", "0") == "1",
        future=True,
        connect_args=connect_args,
    )


engine = _crea_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
    expire_on_commit=False
)


class Base(DeclarativeBase):
    """Base ORM per tutti i modelli."""
    pass


def configura_database(url: str) -> Engine:
    """
    Ricollega engine e SessionLocal a un altro database (test, script).
    Chi ha importato `engine` direttamente continua a vedere il vecchio:
    usare sempre `db.engine` / `db_session()`.
    """
    global engine
    engine.dispose()
    engine = _crea_engine(url)
    SessionLocal.configure(bind=engine)
    log.debug("Database configurato: %s", engine.url)
    return engine


def configura_logging(level: str | None = None) -> None:
    """Formato unico per API e CLI; livello da LOG_LEVEL (default INFO)."""
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )


@contextmanager
def db_session() -> Iterator[Session]:
    """
    Context manager per gestire correttamente la sessione:
    - commit se tutto ok
    - rollback su eccezioni
    - close sempre
    """
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
