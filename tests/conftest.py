"""Pytest configuration for studio_terapie tests.

Every test runs against its own SQLite file under ``tmp_path``; the global
engine is rebound with :func:`studio_terapie.db.configura_database`.
"""
from datetime import date

import pytest

from studio_terapie import db
from studio_terapie.services import crea_pacchetto, crea_paziente, init_db


@pytest.fixture(autouse=True)
def database(tmp_path):
    db.configura_database(f"sqlite:///{tmp_path / 'test.sqlite'}")
    init_db()
    yield
    db.engine.dispose()


@pytest.fixture
def paziente_id():
    return crea_paziente("Anna", "Neri", email="anna.neri@example.com")


@pytest.fixture
def pacchetto(paziente_id):
    """Pacchetto da 10 sedute, senza scadenza."""
    return crea_pacchetto(paziente_id, "Pacchetto 10 sedute", 10, date.today())
