"""
Regole pure dei pacchetti di sedute: nessun accesso al DB.

- calcola_stato              : stato del pacchetto da contatori e scadenza
- tipo_avviso_per_rimanenti  : fascia di avviso per le sedute rimanenti
- messaggio_avviso           : testo dell'avviso, con urgenza crescente

Le soglie sono politica dello studio, uguali per tutti i pacchetti.
"""
from __future__ import annotations

from datetime import date, datetime, time

from .models import StatoPacchetto, TipoAvviso

SOGLIA_CRITICO = 3
SOGLIA_AVVISO = 5


def _inizio_scadenza(data_scadenza: date | datetime) -> datetime:
    if isinstance(data_scadenza, datetime):
        return data_scadenza
    # una data "pura" scade dall'inizio del giorno indicato
    return datetime.combine(data_scadenza, time.min)


def is_scaduto(data_scadenza: date | datetime | None, adesso: datetime | None = None) -> bool:
    if data_scadenza is None:
        return False
    adesso = adesso or datetime.now()
    return adesso > _inizio_scadenza(data_scadenza)


def calcola_stato(
    sedute_totali: int,
    sedute_usate: int,
    data_scadenza: date | datetime | None,
    adesso: datetime | None = None,
) -> StatoPacchetto:
    """
    Priorità (vince la prima):
    1. scadenza superata   -> expired
    2. rimanenti <= 0      -> finished
    3. rimanenti <= 3      -> critical
    4. rimanenti <= 5      -> warning
    5. altrimenti          -> active

    La scadenza precede l'esaurimento: un pacchetto finito e scaduto
    risulta "expired".
    """
    if is_scaduto(data_scadenza, adesso):
        return StatoPacchetto.SCADUTO

    rimanenti = sedute_totali - sedute_usate
    if rimanenti <= 0:
        return StatoPacchetto.FINITO
    if rimanenti <= SOGLIA_CRITICO:
        return StatoPacchetto.CRITICO
    if rimanenti <= SOGLIA_AVVISO:
        return StatoPacchetto.AVVISO
    return StatoPacchetto.ATTIVO


def tipo_avviso_per_rimanenti(rimanenti: int) -> TipoAvviso | None:
    """Valutata solo al consumo di una seduta, sul nuovo numero di rimanenti."""
    if rimanenti <= 0:
        return None
    if rimanenti == 1:
        return TipoAvviso.PRIORITA_ROSSO
    if rimanenti <= SOGLIA_CRITICO:
        return TipoAvviso.ROSSO
    if rimanenti <= SOGLIA_AVVISO:
        return TipoAvviso.GIALLO
    return None


def messaggio_avviso(
    tipo: TipoAvviso,
    nome_pacchetto: str,
    rimanenti: int | None = None,
    data_scadenza: date | None = None,
) -> str:
    if tipo == TipoAvviso.PRIORITA_ROSSO:
        return f"URGENTE: resta 1 sola seduta nel pacchetto '{nome_pacchetto}'. Proporre subito il rinnovo."
    if tipo == TipoAvviso.ROSSO:
        return f"Attenzione: restano solo {rimanenti} sedute nel pacchetto '{nome_pacchetto}'. Contattare il paziente."
    if tipo == TipoAvviso.GIALLO:
        return f"Avviso: restano {rimanenti} sedute nel pacchetto '{nome_pacchetto}'."

    scadenza = data_scadenza.strftime("%d/%m/%Y") if data_scadenza else "n/d"
    if tipo == TipoAvviso.SCADUTO:
        return f"Il pacchetto '{nome_pacchetto}' è scaduto il {scadenza} con {rimanenti} sedute non usate."
    return f"Il pacchetto '{nome_pacchetto}' scade il {scadenza}: restano {rimanenti} sedute."
