from __future__ import annotations

import logging

from sqlalchemy import select

from studio_terapie.auth_models import RuoloUtente, Utente
from studio_terapie.auth_security import hash_password, verify_password
from studio_terapie.db import db_session
from studio_terapie.errori import Conflitto, ErroreValidazione

log = logging.getLogger(__name__)


def crea_utente(username: str, password: str, ruolo: RuoloUtente | str = RuoloUtente.STAFF) -> str:
    username = username.strip().lower()
    if not username or not password:
        raise ErroreValidazione("Username e password sono obbligatori.")
    try:
        ruolo = RuoloUtente(ruolo)
    except ValueError as e:
        raise ErroreValidazione(f"Ruolo non valido: {ruolo}.") from e

    with db_session() as s:
        exists = s.execute(select(Utente).where(Utente.username == username)).scalar_one_or_none()
        if exists:
            raise Conflitto("Username già registrato.")

        u = Utente(username=username, password_hash=hash_password(password), ruolo=ruolo, is_active=True)
        s.add(u)
        s.flush()
        log.info("Creato utente %s (%s)", username, ruolo.value)
        return u.id


def autentica(username: str, password: str) -> Utente | None:
    username = username.strip().lower()
    with db_session() as s:
        u = s.execute(select(Utente).where(Utente.username == username)).scalar_one_or_none()
        if not u or not u.is_active:
            return None
        if not verify_password(password, u.password_hash):
            log.warning("Login fallito per %s", username)
            return None
        return u


def get_utente_by_id(user_id: str) -> Utente | None:
    with db_session() as s:
        return s.get(Utente, user_id)
