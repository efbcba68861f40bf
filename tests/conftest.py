"""
Shared fixtures. The environment is pointed at a throwaway data directory
before any prionstudy module is imported, because settings, the database
engine and the service singletons are created at import time.
"""

import os
import tempfile

DATA_DIR = tempfile.mkdtemp(prefix="prionstudy-test-")

os.environ.update({
    "ENVIRONMENT": "test",
    "DATA_DIR": DATA_DIR,
    "DB_PATH": os.path.join(DATA_DIR, "data.db"),
    "CREDENTIALS_CSV": "",
    "RATE_LIMIT_ENABLED": "false",
    "SESSION_SECRET": "test-secret",
    "SYNC_CSV_ON_STARTUP": "false",
    "ENABLE_SCHEDULER": "false",
    "SUBMISSION_TOKEN": "",
    "ADMIN_TOKEN": "",
    "EMAIL_USER": "",
    "EMAIL_PASS": "",
    "RESEARCH_EMAIL": "",
    "DROPBOX_APP_KEY": "",
    "DROPBOX_APP_SECRET": "",
    "DROPBOX_REFRESH_TOKEN": "",
})

CREDENTIALS_CSV = """id_credentials,user,password,full_name,lang,gender,role,list
1,dr.garcia,secret1,Dra. Garcia,es,F,doctor,1
2,admin,adminpass,Admin,en,M,admin,
3,nurse.eu,secret3,Nurse Etxeberria,eu,F,nurse,2
"""

LIST_1_CSV = """id,id_osakidetza,name,last_names,age,prion_disease
1,TXPR001,Ane,"Etxeberria, Goni",54,CJD
2,TXPR002,Jon,Agirre,7,none
3,TXPR003,Miren,Lasa,61,FFI
"""

LIST_2_CSV = """id,id_osakidetza,name,age
10,TXPR010,Iker,40
"""

for filename, content in (
    ("credentials.csv", CREDENTIALS_CSV),
    ("1_individuals.csv", LIST_1_CSV),
    ("2_individuals.csv", LIST_2_CSV),
):
    with open(os.path.join(DATA_DIR, filename), "w", encoding="utf-8") as f:
        f.write(content)

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from prionstudy.config import Settings  # noqa: E402


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def dropbox_settings(**overrides) -> Settings:
    values = {
        "dropbox_app_key": "app-key",
        "dropbox_app_secret": "app-secret",
        "dropbox_refresh_token": "refresh-token",
        "data_dir": DATA_DIR,
    }
    values.update(overrides)
    return Settings(**values)


def dropbox_error(summary: str, status: int = 409) -> httpx.Response:
    return httpx.Response(status, json={"error_summary": summary, "error": {}})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def consent_client():
    from prionstudy.main import app
    with TestClient(app) as client:
        yield client


@pytest.fixture
def panel_client():
    from prionstudy.panel import app
    with TestClient(app) as client:
        yield client


def login(client: TestClient, username: str, password: str) -> httpx.Response:
    return client.post("/api/login", json={"username": username, "password": password})
