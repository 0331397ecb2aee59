"""
Backend applicativo Studio Terapie (massoterapia / riabilitazione).

Struttura:
- db.py         : engine, sessioni SQLAlchemy e configurazione logging
- models.py     : modelli ORM e enum (pazienti, pacchetti, avvisi, sedute)
- errori.py     : eccezioni di dominio
- pacchetti.py  : regole pure (stato del pacchetto, soglie di avviso, messaggi)
- services.py   : ciclo di vita dei pacchetti e gestione avvisi
- seed.py       : dati iniziali (admin, pazienti demo)
- cli.py        : simulazione applicativi esterni via CLI
- api_main.py   : API REST (FastAPI + JWT)
"""
