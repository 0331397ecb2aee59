from __future__ import annotations

import logging
import os

from sqlalchemy import select

from .auth_models import RuoloUtente, Utente
from .auth_security import hash_password
from .db import db_session
from .models import Paziente

log = logging.getLogger(__name__)

PAZIENTI_DEMO = [
    ("Mario", "Rossi", "m.rossi@example.com", "333 1234567"),
    ("Laura", "Bianchi", "l.bianchi@example.com", "333 7654321"),
    ("Giulia", "Verdi", None, "347 1112233"),
]


def seed_base(demo: bool = False) -> None:
    """
    Popola dati minimi (idempotente):
    - utente admin, se ADMIN_PASSWORD è impostata
    - pazienti dimostrativi (solo con demo=True)
    """
    admin_user = os.getenv("ADMIN_USERNAME", "admin").strip().lower()
    admin_password = os.getenv("ADMIN_PASSWORD")

    with db_session() as s:
        if admin_password:
            exists = s.execute(select(Utente).where(Utente.username == admin_user)).scalar_one_or_none()
            if exists is None:
                s.add(
                    Utente(
                        username=admin_user,
                        password_hash=hash_password(admin_password),
                        ruolo=RuoloUtente.ADMIN,
                        is_active=True,
                    )
                )
                log.info("Seed: creato utente admin '%s'", admin_user)

        if demo:
            for nome, cognome, email, telefono in PAZIENTI_DEMO:
                exists = s.execute(
                    select(Paziente).where(Paziente.nome == nome, Paziente.cognome == cognome)
                ).scalar_one_or_none()
                if exists is None:
                    s.add(Paziente(nome=nome, cognome=cognome, email=email, telefono=telefono))
