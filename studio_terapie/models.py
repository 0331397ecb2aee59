from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def new_uuid() -> str:
    return str(uuid.uuid4())


def _valori(enum_cls: type[enum.Enum]) -> list[str]:
    # salva su DB il valore ("active"), non il nome del membro
    return [m.value for m in enum_cls]


class StatoPacchetto(enum.Enum):
    ATTIVO = "active"
    AVVISO = "warning"
    CRITICO = "critical"
    FINITO = "finished"
    SCADUTO = "expired"

    @property
    def terminale(self) -> bool:
        return self in STATI_TERMINALI


STATI_NON_TERMINALI = (StatoPacchetto.ATTIVO, StatoPacchetto.AVVISO, StatoPacchetto.CRITICO)
STATI_TERMINALI = (StatoPacchetto.FINITO, StatoPacchetto.SCADUTO)


class TipoAvviso(enum.Enum):
    PRIORITA_ROSSO = "priority_red"
    ROSSO = "red"
    GIALLO = "yellow"
    SCADUTO = "expired"
    IN_SCADENZA = "expiring_soon"


class StatoPresenza(enum.Enum):
    PRESENTE = "attended"
    ANNULLATA = "cancelled"
    ASSENTE = "no_show"


METODO_PANNELLO = "panel"

INDICE_PACCHETTO_ATTIVO = "uq_pacchetto_non_terminale_paziente"

# flag letto/non letto memorizzato come stringa
LETTO = "true"
NON_LETTO = "false"


class Paziente(Base):
    __tablename__ = "pazienti"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    nome: Mapped[str] = mapped_column(String(80), nullable=False)
    cognome: Mapped[str] = mapped_column(String(80), nullable=False)
    data_nascita: Mapped[date | None] = mapped_column(Date, nullable=True)
    telefono: Mapped[str | None] = mapped_column(String(30), nullable=True)
    email: Mapped[str | None] = mapped_column(String(120), nullable=True)
    creato_il: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    pacchetti: Mapped[list["PacchettoTerapia"]] = relationship(back_populates="paziente", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"Paziente({self.nome} {self.cognome})"


class PacchettoTerapia(Base):
    __tablename__ = "pacchetti_terapia"
    __table_args__ = (
        # Al massimo un pacchetto non terminale per paziente
        Index(
            INDICE_PACCHETTO_ATTIVO,
            "paziente_id",
            unique=True,
            sqlite_where=text("stato IN ('active', 'warning', 'critical')"),
            postgresql_where=text("stato IN ('active', 'warning', 'critical')"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    paziente_id: Mapped[str] = mapped_column(ForeignKey("pazienti.id"), nullable=False, index=True)

    nome: Mapped[str] = mapped_column(String(120), nullable=False)
    descrizione: Mapped[str | None] = mapped_column(Text, nullable=True)

    sedute_totali: Mapped[int] = mapped_column(Integer, nullable=False)
    sedute_usate: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    data_acquisto: Mapped[date] = mapped_column(Date, nullable=False)
    data_scadenza: Mapped[date | None] = mapped_column(Date, nullable=True)
    prezzo: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    stato: Mapped[StatoPacchetto] = mapped_column(
        Enum(StatoPacchetto, values_callable=_valori, native_enum=False, length=20),
        default=StatoPacchetto.ATTIVO,
        nullable=False,
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    creato_il: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    aggiornato_il: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    # lock ottimistico: UPDATE ... WHERE versione = <letta>
    versione: Mapped[int] = mapped_column(Integer, nullable=False)
    __mapper_args__ = {"version_id_col": versione}

    paziente: Mapped["Paziente"] = relationship(back_populates="pacchetti")
    avvisi: Mapped[list["AvvisoPacchetto"]] = relationship(back_populates="pacchetto", cascade="all, delete-orphan")
    sedute: Mapped[list["SedutaPacchetto"]] = relationship(back_populates="pacchetto", cascade="all, delete-orphan")

    @property
    def sedute_rimanenti(self) -> int:
        return self.sedute_totali - self.sedute_usate

    def __repr__(self) -> str:
        return f"PacchettoTerapia({self.nome}, {self.sedute_usate}/{self.sedute_totali}, {self.stato.value})"


class AvvisoPacchetto(Base):
    __tablename__ = "avvisi_pacchetto"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    pacchetto_id: Mapped[str] = mapped_column(ForeignKey("pacchetti_terapia.id"), nullable=False, index=True)
    paziente_id: Mapped[str] = mapped_column(ForeignKey("pazienti.id"), nullable=False, index=True)

    tipo: Mapped[TipoAvviso] = mapped_column(
        Enum(TipoAvviso, values_callable=_valori, native_enum=False, length=20), nullable=False
    )
    messaggio: Mapped[str] = mapped_column(Text, nullable=False)
    metodo: Mapped[str] = mapped_column(String(20), default=METODO_PANNELLO, nullable=False)
    letto: Mapped[str] = mapped_column(String(5), default=NON_LETTO, nullable=False)

    creato_il: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    pacchetto: Mapped["PacchettoTerapia"] = relationship(back_populates="avvisi")

    @property
    def is_letto(self) -> bool:
        return self.letto == LETTO


class SedutaPacchetto(Base):
    __tablename__ = "sedute_pacchetto"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    pacchetto_id: Mapped[str] = mapped_column(ForeignKey("pacchetti_terapia.id"), nullable=False, index=True)
    paziente_id: Mapped[str] = mapped_column(ForeignKey("pazienti.id"), nullable=False)

    data_seduta: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    presenza: Mapped[StatoPresenza] = mapped_column(
        Enum(StatoPresenza, values_callable=_valori, native_enum=False, length=20),
        default=StatoPresenza.PRESENTE,
        nullable=False,
    )
    terapista: Mapped[str | None] = mapped_column(String(120), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    creata_il: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    pacchetto: Mapped["PacchettoTerapia"] = relationship(back_populates="sedute")
