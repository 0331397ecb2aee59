"""Unit tests for the pure package rules – no database access."""
from datetime import date, datetime, timedelta

import pytest

from studio_terapie.models import StatoPacchetto, TipoAvviso
from studio_terapie.pacchetti import calcola_stato, is_scaduto, messaggio_avviso, tipo_avviso_per_rimanenti


@pytest.mark.parametrize(
    "usate, atteso",
    [
        (0, StatoPacchetto.ATTIVO),
        (4, StatoPacchetto.ATTIVO),
        (5, StatoPacchetto.AVVISO),
        (6, StatoPacchetto.AVVISO),
        (7, StatoPacchetto.CRITICO),
        (9, StatoPacchetto.CRITICO),
        (10, StatoPacchetto.FINITO),
        (11, StatoPacchetto.FINITO),
    ],
)
def test_calcola_stato_soglie(usate, atteso):
    """Status follows the remaining-session thresholds 5 and 3."""
    assert calcola_stato(10, usate, None) == atteso


def test_scadenza_prevale_sulle_sedute_rimanenti():
    """A past expiration date yields expired even with all sessions left."""
    assert calcola_stato(10, 0, date(2020, 1, 1)) == StatoPacchetto.SCADUTO


def test_scadenza_prevale_su_finito():
    """Exhausted and expired reports expired."""
    assert calcola_stato(10, 10, date(2020, 1, 1)) == StatoPacchetto.SCADUTO


def test_scadenza_futura_non_conta():
    futura = date.today() + timedelta(days=30)
    assert calcola_stato(10, 0, futura) == StatoPacchetto.ATTIVO


def test_data_scadenza_vale_da_inizio_giornata():
    """A plain date expires from the start of that day."""
    scadenza = date(2026, 5, 10)
    assert is_scaduto(scadenza, datetime(2026, 5, 10, 9, 0))
    assert not is_scaduto(scadenza, datetime(2026, 5, 9, 23, 59))
    assert not is_scaduto(None, datetime(2026, 5, 10, 9, 0))


def test_calcola_stato_deterministico():
    """Same inputs, same status."""
    adesso = datetime(2026, 3, 1, 12, 0)
    risultati = {calcola_stato(8, 4, date(2026, 4, 1), adesso) for _ in range(5)}
    assert risultati == {StatoPacchetto.AVVISO}


@pytest.mark.parametrize(
    "rimanenti, atteso",
    [
        (0, None),
        (1, TipoAvviso.PRIORITA_ROSSO),
        (2, TipoAvviso.ROSSO),
        (3, TipoAvviso.ROSSO),
        (4, TipoAvviso.GIALLO),
        (5, TipoAvviso.GIALLO),
        (6, None),
        (20, None),
    ],
)
def test_tipo_avviso_per_rimanenti(rimanenti, atteso):
    assert tipo_avviso_per_rimanenti(rimanenti) == atteso


def test_messaggi_con_urgenza_crescente():
    giallo = messaggio_avviso(TipoAvviso.GIALLO, "Dorso 10", 5)
    rosso = messaggio_avviso(TipoAvviso.ROSSO, "Dorso 10", 2)
    urgente = messaggio_avviso(TipoAvviso.PRIORITA_ROSSO, "Dorso 10", 1)

    assert "Dorso 10" in giallo and "5" in giallo
    assert rosso.startswith("Attenzione") and "2" in rosso
    assert urgente.startswith("URGENTE")


def test_messaggi_scadenza():
    msg = messaggio_avviso(TipoAvviso.IN_SCADENZA, "Cervicale", 4, date(2026, 12, 31))
    assert "31/12/2026" in msg
    assert "scaduto" in messaggio_avviso(TipoAvviso.SCADUTO, "Cervicale", 4, date(2026, 1, 31))
