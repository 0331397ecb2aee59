from __future__ import annotations

import argparse
import sys
from datetime import date
from decimal import Decimal, InvalidOperation

from studio_terapie.auth_service import crea_utente
from studio_terapie.db import configura_logging
from studio_terapie.errori import ErroreDominio
from studio_terapie.seed import seed_base
from studio_terapie.services import (
    consuma_seduta,
    controlla_scadenze,
    crea_pacchetto,
    crea_paziente,
    init_db,
    lista_avvisi,
    lista_avvisi_non_letti,
    lista_pacchetti,
    lista_pazienti,
    marca_avviso_letto,
)


def _data(valore: str) -> date:
    try:
        return date.fromisoformat(valore)
    except ValueError:
        raise argparse.ArgumentTypeError(f"data non valida: {valore!r} (formato AAAA-MM-GG)")


def _prezzo(valore: str) -> Decimal:
    try:
        prezzo = Decimal(valore)
    except InvalidOperation:
        prezzo = None
    if prezzo is None or not prezzo.is_finite():
        raise argparse.ArgumentTypeError(f"prezzo non valido: {valore!r}")
    return prezzo


def cmd_init(args: argparse.Namespace) -> None:
    init_db()
    seed_base(demo=args.demo)
    print("DB inizializzato e seed completato.")


def cmd_list(args: argparse.Namespace) -> None:
    if args.entity == "pazienti":
        for p in lista_pazienti():
            print(f"{p.id} | {p.cognome} {p.nome} | {p.email or '-'}")
    elif args.entity == "pacchetti":
        for pk in lista_pacchetti():
            scadenza = pk.data_scadenza.isoformat() if pk.data_scadenza else "-"
            print(
                f"{pk.id} | paziente {pk.paziente_id} | {pk.nome} | "
                f"{pk.sedute_usate}/{pk.sedute_totali} | {pk.stato.value} | scade {scadenza}"
            )
    elif args.entity == "avvisi":
        for a in lista_avvisi():
            print(f"{a.id} | {a.tipo.value} | letto={a.letto} | {a.messaggio}")


def cmd_add_patient(args: argparse.Namespace) -> None:
    pid = crea_paziente(args.nome, args.cognome, args.email, args.telefono)
    print(f"Paziente creato: {pid}")


def cmd_add_user(args: argparse.Namespace) -> None:
    uid = crea_utente(args.username, args.password, ruolo=args.ruolo)
    print(f"Utente creato: {uid}")


def cmd_add_package(args: argparse.Namespace) -> None:
    p = crea_pacchetto(
        paziente_id=args.paziente_id,
        nome=args.nome,
        sedute_totali=args.sedute,
        data_acquisto=args.acquisto or date.today(),
        data_scadenza=args.scadenza,
        prezzo=args.prezzo,
        note=args.note,
    )
    print(f"Pacchetto creato: {p.id} ({p.sedute_totali} sedute)")


def cmd_use_session(args: argparse.Namespace) -> None:
    p = consuma_seduta(args.pacchetto_id)
    print(f"Seduta scalata: {p.sedute_usate}/{p.sedute_totali}, stato {p.stato.value}")


def cmd_alerts(args: argparse.Namespace) -> None:
    """
    Simula il pannello avvisi:
    - legge gli avvisi non letti
    - li stampa su console
    - opzionalmente li marca come letti
    """
    avvisi = lista_avvisi_non_letti()
    if not avvisi:
        print("Nessun avviso da leggere.")
        return

    for a in avvisi:
        print(f"[{a.id}] {a.tipo.value} | {a.creato_il.isoformat()} | {a.messaggio}")
        if args.mark_read:
            marca_avviso_letto(a.id)

    if args.mark_read:
        print("Avvisi marcati come letti.")


def cmd_scadenze(args: argparse.Namespace) -> None:
    esito = controlla_scadenze(giorni_preavviso=args.giorni)
    print(f"Pacchetti scaduti: {esito.scaduti} | in scadenza: {esito.in_scadenza}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="studio-terapie", description="CLI Studio Terapie (pacchetti di sedute)")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Crea DB e carica seed")
    p_init.add_argument("--demo", action="store_true", help="Aggiunge pazienti dimostrativi")
    p_init.set_defaults(func=cmd_init)

    p_list = sub.add_parser("list", help="Lista entità")
    p_list.add_argument("entity", choices=["pazienti", "pacchetti", "avvisi"])
    p_list.set_defaults(func=cmd_list)

    p_addp = sub.add_parser("add-patient", help="Crea paziente")
    p_addp.add_argument("--nome", required=True)
    p_addp.add_argument("--cognome", required=True)
    p_addp.add_argument("--email", default=None)
    p_addp.add_argument("--telefono", default=None)
    p_addp.set_defaults(func=cmd_add_patient)

    p_addu = sub.add_parser("add-user", help="Crea utente dello studio")
    p_addu.add_argument("--username", required=True)
    p_addu.add_argument("--password", required=True)
    p_addu.add_argument("--ruolo", choices=["admin", "staff"], default="staff")
    p_addu.set_defaults(func=cmd_add_user)

    p_pack = sub.add_parser("add-package", help="Vende un pacchetto di sedute a un paziente")
    p_pack.add_argument("--paziente-id", required=True)
    p_pack.add_argument("--nome", required=True)
    p_pack.add_argument("--sedute", type=int, required=True)
    p_pack.add_argument("--acquisto", type=_data, default=None, help="Data ISO, default oggi")
    p_pack.add_argument("--scadenza", type=_data, default=None, help="Data ISO es: 2026-12-31")
    p_pack.add_argument("--prezzo", type=_prezzo, default=None)
    p_pack.add_argument("--note", default=None)
    p_pack.set_defaults(func=cmd_add_package)

    p_use = sub.add_parser("use-session", help="Scala una seduta dal pacchetto")
    p_use.add_argument("--pacchetto-id", required=True)
    p_use.set_defaults(func=cmd_use_session)

    p_alerts = sub.add_parser("alerts", help="Legge gli avvisi non letti (simulazione pannello)")
    p_alerts.add_argument("--mark-read", action="store_true", help="Marca come letti dopo averli stampati")
    p_alerts.set_defaults(func=cmd_alerts)

    p_scad = sub.add_parser("scadenze", help="Controlla pacchetti scaduti o in scadenza")
    p_scad.add_argument("--giorni", type=int, default=7, help="Giorni di preavviso")
    p_scad.set_defaults(func=cmd_scadenze)

    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configura_logging()
    init_db()  # garantisce tabelle
    try:
        args.func(args)
    except ErroreDominio as e:
        print(f"Errore: {e.messaggio}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
