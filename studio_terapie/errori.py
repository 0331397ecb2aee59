"""Eccezioni di dominio: sincrone, con messaggio leggibile, mai ritentate internamente."""
from __future__ import annotations


class ErroreDominio(Exception):
    """Radice di tutti gli errori di dominio."""

    def __init__(self, messaggio: str) -> None:
        super().__init__(messaggio)
        self.messaggio = messaggio


class ErroreValidazione(ErroreDominio, ValueError):
    """Input malformato o fuori intervallo (es. sedute_totali < 1)."""


class NonTrovato(ErroreDominio, LookupError):
    """Id di pacchetto, avviso o paziente inesistente."""


class Conflitto(ErroreDominio):
    """Pacchetto non terminale già presente, o modifica concorrente."""


class PacchettoEsaurito(ErroreDominio):
    """Consumo richiesto su un pacchetto senza sedute disponibili."""


class PacchettoScaduto(PacchettoEsaurito):
    """Consumo richiesto su un pacchetto scaduto."""
