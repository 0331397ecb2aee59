from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from studio_terapie.db import Base
from studio_terapie.models import new_uuid


class RuoloUtente(enum.Enum):
    ADMIN = "admin"
    STAFF = "staff"


class Utente(Base):
    """
    Account del personale dello studio.
    - username univoco
    - password_hash con bcrypt (passlib)
    - ruolo: `admin` può eliminare pacchetti, `staff` no
    """
    __tablename__ = "utenti"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    ruolo: Mapped[RuoloUtente] = mapped_column(
        Enum(RuoloUtente, values_callable=lambda e: [m.value for m in e], native_enum=False, length=10),
        default=RuoloUtente.STAFF,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.ruolo == RuoloUtente.ADMIN
