"""CLI commands run in-process through ``main(argv)``."""
import pytest

from studio_terapie.cli import main
from studio_terapie.services import crea_paziente, lista_pacchetti


def test_init_demo(capsys):
    assert main(["init", "--demo"]) == 0
    assert main(["list", "pazienti"]) == 0

    out = capsys.readouterr().out
    assert "Rossi Mario" in out


def test_pacchetto_da_cli(capsys):
    pid = crea_paziente("Anna", "Neri")

    assert main(["add-package", "--paziente-id", pid, "--nome", "Sei sedute", "--sedute", "6", "--prezzo", "180"]) == 0
    (pacchetto,) = lista_pacchetti()

    assert main(["use-session", "--pacchetto-id", pacchetto.id]) == 0
    assert main(["alerts", "--mark-read"]) == 0
    assert main(["alerts"]) == 0

    out = capsys.readouterr().out
    assert "Seduta scalata: 1/6, stato warning" in out
    assert "yellow" in out
    assert "Nessun avviso da leggere." in out


def test_errore_dominio_esce_con_1(capsys):
    assert main(["use-session", "--pacchetto-id", "non-esiste"]) == 1
    assert "non trovato" in capsys.readouterr().err


def test_scadenze(capsys):
    assert main(["scadenze", "--giorni", "3"]) == 0
    assert "Pacchetti scaduti: 0" in capsys.readouterr().out


@pytest.mark.parametrize(
    "opzione, valore, messaggio",
    [
        ("--scadenza", "31/12/2026", "data non valida"),
        ("--acquisto", "ieri", "data non valida"),
        ("--prezzo", "abc", "prezzo non valido"),
        ("--prezzo", "NaN", "prezzo non valido"),
    ],
)
def test_valori_non_validi_errore_di_uso(capsys, opzione, valore, messaggio):
    """Malformed dates and prices are usage errors (exit 2), not tracebacks."""
    pid = crea_paziente("Anna", "Neri")

    with pytest.raises(SystemExit) as exc:
        main(["add-package", "--paziente-id", pid, "--nome", "Dieci", "--sedute", "10", opzione, valore])

    assert exc.value.code == 2
    assert messaggio in capsys.readouterr().err
    assert lista_pacchetti() == []
