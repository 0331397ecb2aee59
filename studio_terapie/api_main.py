from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from pydantic import BaseModel, ConfigDict, Field

from studio_terapie.auth_models import RuoloUtente, Utente
from studio_terapie.auth_security import create_access_token, get_subject
from studio_terapie.auth_service import autentica, crea_utente, get_utente_by_id
from studio_terapie.db import configura_logging
from studio_terapie.errori import Conflitto, ErroreDominio, ErroreValidazione, NonTrovato, PacchettoEsaurito
from studio_terapie.models import StatoPacchetto, StatoPresenza, TipoAvviso
from studio_terapie.seed import seed_base
from studio_terapie.services import (
    aggiorna_pacchetto,
    consuma_seduta,
    controlla_scadenze,
    crea_pacchetto,
    crea_paziente,
    elimina_pacchetto,
    get_pacchetto,
    init_db,
    lista_avvisi,
    lista_avvisi_non_letti,
    lista_avvisi_paziente,
    lista_pacchetti,
    lista_pacchetti_paziente,
    lista_pazienti_flat,
    lista_sedute_pacchetto,
    marca_avviso_letto,
    pacchetto_attivo,
    registra_seduta_pacchetto,
)

log = logging.getLogger(__name__)

# OAuth2 Bearer (Authorization: Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

app = FastAPI(title="Studio Terapie API", version="1.0.0")

# Errori di dominio -> codici HTTP (PacchettoScaduto eredita da PacchettoEsaurito)
STATUS_ERRORI: list[tuple[type[ErroreDominio], int]] = [
    (ErroreValidazione, status.HTTP_400_BAD_REQUEST),
    (NonTrovato, status.HTTP_404_NOT_FOUND),
    (Conflitto, status.HTTP_409_CONFLICT),
    (PacchettoEsaurito, status.HTTP_409_CONFLICT),
]



# Startup

@app.on_event("startup")
def startup() -> None:
    configura_logging()
    # Crea tabelle (incluse Utente) e seed base (idempotente)
    init_db()
    seed_base()


@app.exception_handler(ErroreDominio)
def errore_dominio_handler(request: Request, exc: ErroreDominio) -> JSONResponse:
    codice = next((c for cls, c in STATUS_ERRORI if isinstance(exc, cls)), status.HTTP_400_BAD_REQUEST)
    log.info("%s %s -> %s: %s", request.method, request.url.path, codice, exc.messaggio)
    return JSONResponse(status_code=codice, content={"detail": exc.messaggio})



# Schemi Auth

class RegisterIn(BaseModel):
    username: str
    password: str
    ruolo: RuoloUtente = RuoloUtente.STAFF


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeOut(BaseModel):
    id: str
    username: str
    ruolo: str
    is_active: bool



# Schemi Domain

class PazienteCreateIn(BaseModel):
    nome: str = Field(..., min_length=1)
    cognome: str = Field(..., min_length=1)
    email: str | None = None
    telefono: str | None = None
    data_nascita: date | None = None


class PacchettoCreateIn(BaseModel):
    paziente_id: str
    nome: str
    sedute_totali: int
    data_acquisto: date
    data_scadenza: date | None = None
    descrizione: str | None = None
    prezzo: Decimal | None = None
    note: str | None = None


class PacchettoUpdateIn(BaseModel):
    # extra="forbid": contatori e stato non si modificano da qui
    model_config = ConfigDict(extra="forbid")

    nome: str | None = None
    descrizione: str | None = None
    data_acquisto: date | None = None
    data_scadenza: date | None = None
    prezzo: Decimal | None = None
    note: str | None = None


class SedutaPacchettoIn(BaseModel):
    paziente_id: str
    data_seduta: datetime
    presenza: StatoPresenza = StatoPresenza.PRESENTE
    terapista: str | None = None
    note: str | None = None


class PacchettoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    paziente_id: str
    nome: str
    descrizione: str | None
    sedute_totali: int
    sedute_usate: int
    sedute_rimanenti: int
    data_acquisto: date
    data_scadenza: date | None
    prezzo: Decimal | None
    stato: StatoPacchetto
    note: str | None
    creato_il: datetime
    aggiornato_il: datetime


class AvvisoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    pacchetto_id: str
    paziente_id: str
    tipo: TipoAvviso
    messaggio: str
    metodo: str
    letto: str
    creato_il: datetime


class SedutaPacchettoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    pacchetto_id: str
    paziente_id: str
    data_seduta: datetime
    presenza: StatoPresenza
    terapista: str | None
    note: str | None


class EsitoScadenzeOut(BaseModel):
    scaduti: int
    in_scadenza: int



# Dipendenze auth

def get_current_user(token: str = Depends(oauth2_scheme)) -> Utente:
    # protezione extra: elimina spazi / virgolette accidentali
    token = token.strip().strip('"').strip("'")

    user_id = get_subject(token)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token non valido")

    u = get_utente_by_id(user_id)
    if not u or not u.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Utente non valido")
    return u


def get_current_admin(user: Utente = Depends(get_current_user)) -> Utente:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Operazione riservata agli amministratori")
    return user



# AUTH endpoints

@app.post("/api/auth/register", response_model=dict)
def register(payload: RegisterIn, admin: Utente = Depends(get_current_admin)) -> dict[str, Any]:
    # nessuna registrazione pubblica: gli account li crea un admin
    user_id = crea_utente(payload.username, payload.password, ruolo=payload.ruolo)
    return {"ok": True, "user_id": user_id}


@app.post("/api/auth/login", response_model=TokenOut)
def login(form: OAuth2PasswordRequestForm = Depends()) -> TokenOut:
    u = autentica(form.username, form.password)
    if not u:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Credenziali non valide")

    token = create_access_token(subject=u.id, ruolo=u.ruolo.value)
    return TokenOut(access_token=token)


@app.get("/api/me", response_model=MeOut)
def me(user: Utente = Depends(get_current_user)) -> MeOut:
    return MeOut(id=user.id, username=user.username, ruolo=user.ruolo.value, is_active=user.is_active)



# Pazienti

@app.get("/api/pazienti")
def api_pazienti(user: Utente = Depends(get_current_user)) -> list[dict]:
    return lista_pazienti_flat()


@app.post("/api/pazienti", status_code=status.HTTP_201_CREATED)
def api_crea_paziente(payload: PazienteCreateIn, user: Utente = Depends(get_current_user)) -> dict[str, Any]:
    pid = crea_paziente(payload.nome, payload.cognome, payload.email, payload.telefono, payload.data_nascita)
    return {"ok": True, "paziente_id": pid}


@app.get("/api/pazienti/{paziente_id}/pacchetti", response_model=list[PacchettoOut])
def api_pacchetti_paziente(paziente_id: str, user: Utente = Depends(get_current_user)) -> Any:
    return lista_pacchetti_paziente(paziente_id)


@app.get("/api/pazienti/{paziente_id}/pacchetto-attivo", response_model=PacchettoOut | None)
def api_pacchetto_attivo(paziente_id: str, user: Utente = Depends(get_current_user)) -> Any:
    return pacchetto_attivo(paziente_id)


@app.get("/api/pazienti/{paziente_id}/avvisi", response_model=list[AvvisoOut])
def api_avvisi_paziente(paziente_id: str, user: Utente = Depends(get_current_user)) -> Any:
    return lista_avvisi_paziente(paziente_id)



# Pacchetti

@app.get("/api/pacchetti", response_model=list[PacchettoOut])
def api_pacchetti(user: Utente = Depends(get_current_user)) -> Any:
    return lista_pacchetti()


@app.post("/api/pacchetti", response_model=PacchettoOut, status_code=status.HTTP_201_CREATED)
def api_crea_pacchetto(payload: PacchettoCreateIn, user: Utente = Depends(get_current_user)) -> Any:
    return crea_pacchetto(**payload.model_dump())


@app.post("/api/pacchetti/controlla-scadenze", response_model=EsitoScadenzeOut)
def api_controlla_scadenze(giorni: int = 7, user: Utente = Depends(get_current_user)) -> Any:
    esito = controlla_scadenze(giorni_preavviso=giorni)
    return EsitoScadenzeOut(scaduti=esito.scaduti, in_scadenza=esito.in_scadenza)


@app.get("/api/pacchetti/{pacchetto_id}", response_model=PacchettoOut)
def api_pacchetto(pacchetto_id: str, user: Utente = Depends(get_current_user)) -> Any:
    return get_pacchetto(pacchetto_id)


@app.patch("/api/pacchetti/{pacchetto_id}", response_model=PacchettoOut)
def api_aggiorna_pacchetto(
    pacchetto_id: str, payload: PacchettoUpdateIn, user: Utente = Depends(get_current_user)
) -> Any:
    return aggiorna_pacchetto(pacchetto_id, **payload.model_dump(exclude_unset=True))


@app.delete("/api/pacchetti/{pacchetto_id}")
def api_elimina_pacchetto(pacchetto_id: str, user: Utente = Depends(get_current_admin)) -> dict[str, Any]:
    if not elimina_pacchetto(pacchetto_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pacchetto non trovato")
    return {"ok": True}


@app.post("/api/pacchetti/{pacchetto_id}/usa-seduta", response_model=PacchettoOut)
def api_usa_seduta(pacchetto_id: str, user: Utente = Depends(get_current_user)) -> Any:
    return consuma_seduta(pacchetto_id)


@app.get("/api/pacchetti/{pacchetto_id}/sedute", response_model=list[SedutaPacchettoOut])
def api_sedute_pacchetto(pacchetto_id: str, user: Utente = Depends(get_current_user)) -> Any:
    return lista_sedute_pacchetto(pacchetto_id)


@app.post(
    "/api/pacchetti/{pacchetto_id}/sedute",
    response_model=SedutaPacchettoOut,
    status_code=status.HTTP_201_CREATED,
)
def api_registra_seduta(
    pacchetto_id: str, payload: SedutaPacchettoIn, user: Utente = Depends(get_current_user)
) -> Any:
    return registra_seduta_pacchetto(pacchetto_id=pacchetto_id, **payload.model_dump())



# Avvisi

@app.get("/api/avvisi", response_model=list[AvvisoOut])
def api_avvisi(user: Utente = Depends(get_current_user)) -> Any:
    return lista_avvisi()


@app.get("/api/avvisi/non-letti", response_model=list[AvvisoOut])
def api_avvisi_non_letti(user: Utente = Depends(get_current_user)) -> Any:
    return lista_avvisi_non_letti()


@app.patch("/api/avvisi/{avviso_id}/letto", response_model=AvvisoOut)
def api_marca_letto(avviso_id: str, user: Utente = Depends(get_current_user)) -> Any:
    return marca_avviso_letto(avviso_id)
