"""HTTP layer: FastAPI routes, JWT guard and domain-error mapping."""
from datetime import date

import pytest
from fastapi.testclient import TestClient

from studio_terapie.api_main import app
from studio_terapie.auth_service import crea_utente


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("ADMIN_USERNAME", "admin")
    monkeypatch.setenv("ADMIN_PASSWORD", "admin-segreta")
    with TestClient(app) as c:
        yield c


def _login(client, username, password):
    r = client.post("/api/auth/login", data={"username": username, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


@pytest.fixture
def staff(client):
    crea_utente("sara", "password-sara")
    return _login(client, "sara", "password-sara")


@pytest.fixture
def admin(client):
    return _login(client, "admin", "admin-segreta")


@pytest.fixture
def paziente(client, staff):
    r = client.post("/api/pazienti", json={"nome": "Anna", "cognome": "Neri"}, headers=staff)
    assert r.status_code == 201
    return r.json()["paziente_id"]


def _nuovo_pacchetto(client, headers, paziente_id, sedute=10, **extra):
    payload = {
        "paziente_id": paziente_id,
        "nome": "Pacchetto 10 sedute",
        "sedute_totali": sedute,
        "data_acquisto": date.today().isoformat(),
        **extra,
    }
    return client.post("/api/pacchetti", json=payload, headers=headers)


def test_endpoint_protetti(client):
    assert client.get("/api/pacchetti").status_code == 401
    assert client.get("/api/avvisi", headers={"Authorization": "Bearer non-valido"}).status_code == 401


def test_register_solo_admin(client, staff, admin):
    """Accounts are created by an admin only: no public sign-up."""
    nuovo = {"username": "Marco", "password": "pw"}
    assert client.post("/api/auth/register", json=nuovo).status_code == 401
    assert client.post("/api/auth/register", json=nuovo, headers=staff).status_code == 403
    assert client.post("/api/auth/login", data={"username": "marco", "password": "pw"}).status_code == 401

    r = client.post("/api/auth/register", json=nuovo, headers=admin)
    assert r.status_code == 200

    headers = _login(client, "marco", "pw")
    me = client.get("/api/me", headers=headers).json()
    assert me["username"] == "marco"
    assert me["ruolo"] == "staff"

    assert client.post("/api/auth/register", json={"username": "marco", "password": "x"}, headers=admin).status_code == 409
    assert client.post("/api/auth/login", data={"username": "marco", "password": "sbagliata"}).status_code == 401


def test_register_admin_con_ruolo(client, admin):
    r = client.post(
        "/api/auth/register", json={"username": "elena", "password": "pw", "ruolo": "admin"}, headers=admin
    )
    assert r.status_code == 200

    me = client.get("/api/me", headers=_login(client, "elena", "pw")).json()
    assert me["ruolo"] == "admin"


def test_flusso_pacchetto_e_avvisi(client, staff, paziente):
    r = _nuovo_pacchetto(client, staff, paziente, prezzo="350.00", data_scadenza="2099-12-31")
    assert r.status_code == 201
    pacchetto = r.json()
    assert pacchetto["stato"] == "active"
    assert pacchetto["sedute_rimanenti"] == 10

    for _ in range(5):
        r = client.post(f"/api/pacchetti/{pacchetto['id']}/usa-seduta", headers=staff)
        assert r.status_code == 200
    assert r.json()["stato"] == "warning"
    assert r.json()["sedute_usate"] == 5

    non_letti = client.get("/api/avvisi/non-letti", headers=staff).json()
    assert [a["tipo"] for a in non_letti] == ["yellow"]
    assert non_letti[0]["letto"] == "false"
    assert non_letti[0]["metodo"] == "panel"

    r = client.patch(f"/api/avvisi/{non_letti[0]['id']}/letto", headers=staff)
    assert r.status_code == 200
    assert r.json()["letto"] == "true"
    assert client.get("/api/avvisi/non-letti", headers=staff).json() == []
    assert len(client.get(f"/api/pazienti/{paziente}/avvisi", headers=staff).json()) == 1

    attivo = client.get(f"/api/pazienti/{paziente}/pacchetto-attivo", headers=staff).json()
    assert attivo["id"] == pacchetto["id"]


def test_errori_dominio(client, staff, paziente):
    assert _nuovo_pacchetto(client, staff, paziente, sedute=0).status_code == 400
    assert _nuovo_pacchetto(client, staff, "non-esiste").status_code == 404

    pid = _nuovo_pacchetto(client, staff, paziente, sedute=1).json()["id"]
    assert _nuovo_pacchetto(client, staff, paziente).status_code == 409

    assert client.post(f"/api/pacchetti/{pid}/usa-seduta", headers=staff).json()["stato"] == "finished"
    r = client.post(f"/api/pacchetti/{pid}/usa-seduta", headers=staff)
    assert r.status_code == 409
    assert "Nessuna seduta" in r.json()["detail"]

    assert client.post("/api/pacchetti/non-esiste/usa-seduta", headers=staff).status_code == 404
    assert client.patch("/api/avvisi/non-esiste/letto", headers=staff).status_code == 404


def test_pacchetto_attivo_assente(client, staff, paziente):
    r = client.get(f"/api/pazienti/{paziente}/pacchetto-attivo", headers=staff)
    assert r.status_code == 200
    assert r.json() is None


def test_aggiorna_pacchetto(client, staff, paziente):
    pid = _nuovo_pacchetto(client, staff, paziente).json()["id"]

    r = client.patch(f"/api/pacchetti/{pid}", json={"note": "pagato"}, headers=staff)
    assert r.status_code == 200
    assert r.json()["note"] == "pagato"

    assert client.patch(f"/api/pacchetti/{pid}", json={"sedute_usate": 4}, headers=staff).status_code == 422
    assert client.patch(f"/api/pacchetti/{pid}", json={}, headers=staff).status_code == 400


def test_elimina_solo_admin(client, staff, admin, paziente):
    pid = _nuovo_pacchetto(client, staff, paziente).json()["id"]

    assert client.delete(f"/api/pacchetti/{pid}", headers=staff).status_code == 403
    assert client.delete(f"/api/pacchetti/{pid}", headers=admin).status_code == 200
    assert client.delete(f"/api/pacchetti/{pid}", headers=admin).status_code == 404
    assert client.get(f"/api/pacchetti/{pid}", headers=staff).status_code == 404


def test_registro_sedute(client, staff, paziente):
    pid = _nuovo_pacchetto(client, staff, paziente).json()["id"]

    r = client.post(
        f"/api/pacchetti/{pid}/sedute",
        json={"paziente_id": paziente, "data_seduta": "2026-03-02T10:00:00", "presenza": "attended"},
        headers=staff,
    )
    assert r.status_code == 201
    client.post(
        f"/api/pacchetti/{pid}/sedute",
        json={"paziente_id": paziente, "data_seduta": "2026-03-09T10:00:00", "presenza": "no_show"},
        headers=staff,
    )

    sedute = client.get(f"/api/pacchetti/{pid}/sedute", headers=staff).json()
    assert [s["presenza"] for s in sedute] == ["attended", "no_show"]
    assert client.get(f"/api/pacchetti/{pid}", headers=staff).json()["sedute_usate"] == 1


def test_controlla_scadenze_endpoint(client, staff, paziente):
    _nuovo_pacchetto(client, staff, paziente, data_acquisto="2020-01-01", data_scadenza="2020-06-01")

    r = client.post("/api/pacchetti/controlla-scadenze", params={"giorni": 7}, headers=staff)
    assert r.status_code == 200
    assert r.json() == {"scaduti": 1, "in_scadenza": 0}
