from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from . import auth_models  # noqa: F401  (registra la tabella utenti nel metadata)
from . import db
from .db import Base, db_session
from .errori import Conflitto, ErroreValidazione, NonTrovato, PacchettoEsaurito, PacchettoScaduto
from .models import (
    INDICE_PACCHETTO_ATTIVO,
    LETTO,
    METODO_PANNELLO,
    NON_LETTO,
    STATI_NON_TERMINALI,
    AvvisoPacchetto,
    PacchettoTerapia,
    Paziente,
    SedutaPacchetto,
    StatoPacchetto,
    StatoPresenza,
    TipoAvviso,
)
from .pacchetti import calcola_stato, is_scaduto, messaggio_avviso, tipo_avviso_per_rimanenti

log = logging.getLogger(__name__)


# =========================
# Bootstrap DB
# =========================
def init_db() -> None:
    """Crea le tabelle se non esistono."""
    Base.metadata.create_all(bind=db.engine)


# =========================
# Helper / DTO
# =========================
@dataclass(frozen=True)
class EsitoScadenze:
    scaduti: int
    in_scadenza: int


class ElencoPazienti(Protocol):
    """Collaboratore esterno: basta sapere se un paziente esiste."""

    def esiste(self, paziente_id: str) -> bool: ...


class ElencoPazientiDb:
    """Implementazione su tabella `pazienti`."""

    def esiste(self, paziente_id: str) -> bool:
        with db_session() as s:
            return s.get(Paziente, paziente_id) is not None


def _flush(s: Session) -> None:
    """Traduce i conflitti di persistenza in errori di dominio."""
    try:
        s.flush()
    except StaleDataError as e:
        raise Conflitto("Il pacchetto è stato modificato da un'altra richiesta: riprovare.") from e
    except IntegrityError as e:
        dettaglio = str(e.orig)
        # PostgreSQL riporta il nome dell'indice, SQLite la colonna
        if INDICE_PACCHETTO_ATTIVO in dettaglio or "UNIQUE constraint failed: pacchetti_terapia.paziente_id" in dettaglio:
            raise Conflitto("Il paziente ha già un pacchetto attivo.") from e
        log.error("Vincolo di integrità violato: %s", dettaglio)
        raise ErroreValidazione("Dati non coerenti con l'archivio (riferimento inesistente o campo mancante).") from e


def _get_pacchetto(s: Session, pacchetto_id: str) -> PacchettoTerapia:
    p = s.get(PacchettoTerapia, pacchetto_id)
    if p is None:
        raise NonTrovato(f"Pacchetto {pacchetto_id} non trovato.")
    return p


def _aggiorna_stato(p: PacchettoTerapia, adesso: datetime | None = None) -> bool:
    """
    Ricalcolo "pigro": nessuno scheduler aggiorna lo stato, una scadenza
    superata diventa visibile solo quando il pacchetto viene riletto.
    Gli stati terminali non cambiano mai.
    """
    if p.stato.terminale:
        return False
    nuovo = calcola_stato(p.sedute_totali, p.sedute_usate, p.data_scadenza, adesso)
    if nuovo == p.stato:
        return False
    log.info("Pacchetto %s: stato %s -> %s", p.id, p.stato.value, nuovo.value)
    p.stato = nuovo
    return True


def _aggiorna_tutti(s: Session, pacchetti: list[PacchettoTerapia]) -> list[PacchettoTerapia]:
    if any([_aggiorna_stato(p) for p in pacchetti]):
        _flush(s)
    return pacchetti


# =========================
# Pazienti (collaboratore esterno)
# =========================
def crea_paziente(
    nome: str,
    cognome: str,
    email: str | None = None,
    telefono: str | None = None,
    data_nascita: date | None = None,
) -> str:
    if not nome.strip() or not cognome.strip():
        raise ErroreValidazione("Nome e cognome del paziente sono obbligatori.")
    with db_session() as s:
        p = Paziente(
            nome=nome.strip(), cognome=cognome.strip(), email=email, telefono=telefono, data_nascita=data_nascita
        )
        s.add(p)
        s.flush()
        return p.id


def lista_pazienti() -> list[Paziente]:
    with db_session() as s:
        return list(s.scalars(select(Paziente).order_by(Paziente.cognome, Paziente.nome)))


def lista_pazienti_flat() -> list[dict]:
    with db_session() as s:
        rows = s.execute(
            select(Paziente.id, Paziente.nome, Paziente.cognome, Paziente.email, Paziente.telefono)
            .order_by(Paziente.cognome, Paziente.nome)
        ).all()
        return [
            {"id": r.id, "nome": r.nome, "cognome": r.cognome, "email": r.email, "telefono": r.telefono}
            for r in rows
        ]


# =========================
# Pacchetti: query
# =========================
def get_pacchetto(pacchetto_id: str) -> PacchettoTerapia:
    with db_session() as s:
        p = _get_pacchetto(s, pacchetto_id)
        _aggiorna_tutti(s, [p])
        return p


def lista_pacchetti() -> list[PacchettoTerapia]:
    with db_session() as s:
        q = select(PacchettoTerapia).order_by(PacchettoTerapia.creato_il.desc())
        return _aggiorna_tutti(s, list(s.scalars(q)))


def lista_pacchetti_paziente(paziente_id: str) -> list[PacchettoTerapia]:
    with db_session() as s:
        q = (
            select(PacchettoTerapia)
            .where(PacchettoTerapia.paziente_id == paziente_id)
            .order_by(PacchettoTerapia.data_acquisto.desc(), PacchettoTerapia.creato_il.desc())
        )
        return _aggiorna_tutti(s, list(s.scalars(q)))


def _pacchetto_non_terminale(s: Session, paziente_id: str) -> PacchettoTerapia | None:
    q = select(PacchettoTerapia).where(
        PacchettoTerapia.paziente_id == paziente_id,
        PacchettoTerapia.stato.in_(STATI_NON_TERMINALI),
    )
    candidati = _aggiorna_tutti(s, list(s.scalars(q)))
    return next((p for p in candidati if not p.stato.terminale), None)


def pacchetto_attivo(paziente_id: str) -> PacchettoTerapia | None:
    """L'unico pacchetto active/warning/critical del paziente, se c'è."""
    with db_session() as s:
        return _pacchetto_non_terminale(s, paziente_id)


# =========================
# Pacchetti: ciclo di vita (use case core)
# =========================
def crea_pacchetto(
    paziente_id: str,
    nome: str,
    sedute_totali: int,
    data_acquisto: date,
    data_scadenza: date | None = None,
    descrizione: str | None = None,
    prezzo: Decimal | None = None,
    note: str | None = None,
    pazienti: ElencoPazienti | None = None,
) -> PacchettoTerapia:
    """
    Use case: vendita di un pacchetto di sedute.
    - verifica che il paziente esista
    - sedute_totali >= 1
    - rifiuta se il paziente ha già un pacchetto non terminale
    - salva con sedute_usate = 0 e stato active
    """
    nome = (nome or "").strip()
    if not nome:
        raise ErroreValidazione("Il nome del pacchetto è obbligatorio.")
    if isinstance(sedute_totali, bool) or not isinstance(sedute_totali, int) or sedute_totali < 1:
        raise ErroreValidazione("Il pacchetto deve avere almeno 1 seduta.")
    if prezzo is not None and prezzo < 0:
        raise ErroreValidazione("Il prezzo non può essere negativo.")
    if data_scadenza is not None and data_scadenza < data_acquisto:
        raise ErroreValidazione("La data di scadenza precede la data di acquisto.")

    pazienti = pazienti or ElencoPazientiDb()
    if not pazienti.esiste(paziente_id):
        raise NonTrovato(f"Paziente {paziente_id} non trovato.")

    with db_session() as s:
        esistente = _pacchetto_non_terminale(s, paziente_id)
        if esistente is not None:
            log.warning("Pacchetto rifiutato: il paziente %s ha già il pacchetto %s", paziente_id, esistente.id)
            raise Conflitto(
                f"Il paziente ha già un pacchetto attivo ('{esistente.nome}', "
                f"{esistente.sedute_rimanenti} sedute rimanenti)."
            )

        p = PacchettoTerapia(
            paziente_id=paziente_id,
            nome=nome,
            descrizione=descrizione,
            sedute_totali=sedute_totali,
            sedute_usate=0,
            data_acquisto=data_acquisto,
            data_scadenza=data_scadenza,
            prezzo=prezzo,
            stato=StatoPacchetto.ATTIVO,
            note=note,
        )
        s.add(p)
        _flush(s)
        log.info("Creato pacchetto %s (%s sedute) per paziente %s", p.id, sedute_totali, paziente_id)
        return p


def _consuma(s: Session, p: PacchettoTerapia, adesso: datetime | None = None) -> AvvisoPacchetto | None:
    """Scala una seduta, ricalcola lo stato e genera al massimo un avviso."""
    if p.sedute_rimanenti <= 0 or p.stato == StatoPacchetto.FINITO:
        log.warning("Consumo rifiutato: pacchetto %s esaurito", p.id)
        raise PacchettoEsaurito(f"Nessuna seduta disponibile nel pacchetto '{p.nome}'.")
    if p.stato == StatoPacchetto.SCADUTO or is_scaduto(p.data_scadenza, adesso):
        log.warning("Consumo rifiutato: pacchetto %s scaduto", p.id)
        raise PacchettoScaduto(f"Il pacchetto '{p.nome}' è scaduto.")

    p.sedute_usate += 1
    p.stato = calcola_stato(p.sedute_totali, p.sedute_usate, p.data_scadenza, adesso)

    rimanenti = p.sedute_rimanenti
    avviso = None
    tipo = tipo_avviso_per_rimanenti(rimanenti)
    if tipo is not None:
        # nessuna deduplica per fascia: un avviso per ogni consumo che cade in fascia
        avviso = AvvisoPacchetto(
            pacchetto_id=p.id,
            paziente_id=p.paziente_id,
            tipo=tipo,
            messaggio=messaggio_avviso(tipo, p.nome, rimanenti),
            metodo=METODO_PANNELLO,
            letto=NON_LETTO,
        )
        s.add(avviso)

    _flush(s)
    log.info(
        "Pacchetto %s: seduta consumata (%s/%s, %s)%s",
        p.id,
        p.sedute_usate,
        p.sedute_totali,
        p.stato.value,
        f", avviso {tipo.value}" if tipo else "",
    )
    return avviso


def consuma_seduta(pacchetto_id: str, adesso: datetime | None = None) -> PacchettoTerapia:
    """
    Use case: scalare una seduta dal pacchetto.
    Stato, contatore e avviso vengono scritti insieme o per niente.
    """
    try:
        with db_session() as s:
            p = _get_pacchetto(s, pacchetto_id)
            _consuma(s, p, adesso)
            return p
    except PacchettoScaduto:
        _registra_scadenza(pacchetto_id, adesso)
        raise


def _registra_scadenza(pacchetto_id: str, adesso: datetime | None = None) -> None:
    """
    Un consumo rifiutato per scadenza fa comunque diventare il pacchetto
    `expired`, in una transazione separata da quella annullata.
    """
    with db_session() as s:
        p = s.get(PacchettoTerapia, pacchetto_id)
        if p is None or p.stato.terminale or not is_scaduto(p.data_scadenza, adesso):
            return
        log.info("Pacchetto %s: stato %s -> %s", p.id, p.stato.value, StatoPacchetto.SCADUTO.value)
        p.stato = StatoPacchetto.SCADUTO
        _flush(s)


def registra_seduta_pacchetto(
    pacchetto_id: str,
    paziente_id: str,
    data_seduta: datetime,
    presenza: StatoPresenza | str = StatoPresenza.PRESENTE,
    terapista: str | None = None,
    note: str | None = None,
) -> SedutaPacchetto:
    """
    Registra una presenza sul pacchetto; solo `attended` scala una seduta.
    Se il consumo fallisce la presenza non viene registrata (una scadenza
    scoperta in quel momento sì).
    """
    try:
        presenza = StatoPresenza(presenza)
    except ValueError as e:
        raise ErroreValidazione(f"Presenza non valida: {presenza}.") from e

    try:
        return _registra_seduta(pacchetto_id, paziente_id, data_seduta, presenza, terapista, note)
    except PacchettoScaduto:
        _registra_scadenza(pacchetto_id)
        raise


def _registra_seduta(
    pacchetto_id: str,
    paziente_id: str,
    data_seduta: datetime,
    presenza: StatoPresenza,
    terapista: str | None,
    note: str | None,
) -> SedutaPacchetto:
    with db_session() as s:
        p = _get_pacchetto(s, pacchetto_id)
        if p.paziente_id != paziente_id:
            raise ErroreValidazione("Il pacchetto non appartiene al paziente indicato.")

        if presenza == StatoPresenza.PRESENTE:
            _consuma(s, p)

        seduta = SedutaPacchetto(
            pacchetto_id=p.id,
            paziente_id=paziente_id,
            data_seduta=data_seduta,
            presenza=presenza,
            terapista=terapista,
            note=note,
        )
        s.add(seduta)
        _flush(s)
        return seduta


def lista_sedute_pacchetto(pacchetto_id: str) -> list[SedutaPacchetto]:
    with db_session() as s:
        _get_pacchetto(s, pacchetto_id)
        q = (
            select(SedutaPacchetto)
            .where(SedutaPacchetto.pacchetto_id == pacchetto_id)
            .order_by(SedutaPacchetto.data_seduta.asc())
        )
        return list(s.scalars(q))


CAMPI_MODIFICABILI = frozenset({"nome", "descrizione", "data_acquisto", "data_scadenza", "prezzo", "note"})


def aggiorna_pacchetto(pacchetto_id: str, **campi: Any) -> PacchettoTerapia:
    """
    Modifica diretta dei campi anagrafici. Contatori e stato passano solo
    dal consumo delle sedute.
    """
    if not campi:
        raise ErroreValidazione("Indicare almeno un campo da aggiornare.")
    non_ammessi = sorted(set(campi) - CAMPI_MODIFICABILI)
    if non_ammessi:
        raise ErroreValidazione(f"Campi non modificabili: {', '.join(non_ammessi)}.")
    if "nome" in campi:
        campi["nome"] = (campi["nome"] or "").strip()
        if not campi["nome"]:
            raise ErroreValidazione("Il nome del pacchetto è obbligatorio.")
    if "data_acquisto" in campi and campi["data_acquisto"] is None:
        raise ErroreValidazione("La data di acquisto è obbligatoria.")
    if campi.get("prezzo") is not None and campi["prezzo"] < 0:
        raise ErroreValidazione("Il prezzo non può essere negativo.")

    with db_session() as s:
        p = _get_pacchetto(s, pacchetto_id)
        for campo, valore in campi.items():
            setattr(p, campo, valore)

        if p.data_scadenza is not None and p.data_scadenza < p.data_acquisto:
            raise ErroreValidazione("La data di scadenza precede la data di acquisto.")

        _aggiorna_stato(p)
        _flush(s)
        log.info("Pacchetto %s aggiornato: %s", p.id, ", ".join(sorted(campi)))
        return p


def elimina_pacchetto(pacchetto_id: str) -> bool:
    """Override amministrativo: nessun controllo sugli invarianti."""
    with db_session() as s:
        p = s.get(PacchettoTerapia, pacchetto_id)
        if not p:
            return False
        s.delete(p)
        log.warning("Pacchetto %s eliminato (paziente %s)", pacchetto_id, p.paziente_id)
        return True


# =========================
# Scadenze (solo su richiesta, nessuno scheduler)
# =========================
def controlla_scadenze(giorni_preavviso: int = 7, adesso: datetime | None = None) -> EsitoScadenze:
    """
    Scansiona i pacchetti non terminali con scadenza:
    - scaduti: stato expired + un avviso `expired`
    - in scadenza entro `giorni_preavviso`: un solo avviso `expiring_soon` per pacchetto
    """
    if giorni_preavviso < 0:
        raise ErroreValidazione("I giorni di preavviso non possono essere negativi.")
    adesso = adesso or datetime.now()
    limite = adesso + timedelta(days=giorni_preavviso)

    scaduti = in_scadenza = 0
    with db_session() as s:
        q = select(PacchettoTerapia).where(
            PacchettoTerapia.stato.in_(STATI_NON_TERMINALI),
            PacchettoTerapia.data_scadenza.is_not(None),
        )
        for p in list(s.scalars(q)):
            if is_scaduto(p.data_scadenza, adesso):
                p.stato = StatoPacchetto.SCADUTO
                tipo = TipoAvviso.SCADUTO
                scaduti += 1
            elif is_scaduto(p.data_scadenza, limite):
                gia_avvisato = s.execute(
                    select(AvvisoPacchetto.id)
                    .where(AvvisoPacchetto.pacchetto_id == p.id, AvvisoPacchetto.tipo == TipoAvviso.IN_SCADENZA)
                    .limit(1)
                ).first()
                if gia_avvisato is not None:
                    continue
                tipo = TipoAvviso.IN_SCADENZA
                in_scadenza += 1
            else:
                continue

            s.add(
                AvvisoPacchetto(
                    pacchetto_id=p.id,
                    paziente_id=p.paziente_id,
                    tipo=tipo,
                    messaggio=messaggio_avviso(tipo, p.nome, p.sedute_rimanenti, p.data_scadenza),
                    metodo=METODO_PANNELLO,
                    letto=NON_LETTO,
                )
            )
        _flush(s)

    log.info("Controllo scadenze: %s scaduti, %s in scadenza", scaduti, in_scadenza)
    return EsitoScadenze(scaduti=scaduti, in_scadenza=in_scadenza)


# =========================
# Avvisi
# =========================
def lista_avvisi() -> list[AvvisoPacchetto]:
    with db_session() as s:
        return list(s.scalars(select(AvvisoPacchetto).order_by(AvvisoPacchetto.creato_il.desc())))


def lista_avvisi_non_letti() -> list[AvvisoPacchetto]:
    with db_session() as s:
        q = (
            select(AvvisoPacchetto)
            .where(AvvisoPacchetto.letto == NON_LETTO)
            .order_by(AvvisoPacchetto.creato_il.desc())
        )
        return list(s.scalars(q))


def lista_avvisi_paziente(paziente_id: str) -> list[AvvisoPacchetto]:
    with db_session() as s:
        q = (
            select(AvvisoPacchetto)
            .where(AvvisoPacchetto.paziente_id == paziente_id)
            .order_by(AvvisoPacchetto.creato_il.desc())
        )
        return list(s.scalars(q))


def marca_avviso_letto(avviso_id: str) -> AvvisoPacchetto:
    """Idempotente: un avviso già letto resta letto."""
    with db_session() as s:
        a = s.get(AvvisoPacchetto, avviso_id)
        if a is None:
            raise NonTrovato(f"Avviso {avviso_id} non trovato.")
        if a.letto != LETTO:
            a.letto = LETTO
        return a
