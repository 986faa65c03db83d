import os
import tempfile
from pathlib import Path

# nexa.config 는 import 시점에 환경변수를 읽으므로 먼저 설정
_TMP = Path(tempfile.mkdtemp(prefix="nexa-test-"))
DB_FILE = _TMP / "test.db"
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{DB_FILE}"
os.environ["ADMIN_EMAIL"] = "admin@nexa.id"
os.environ["ADMIN_PASSWORD"] = "s3cret"
os.environ["REDIS_URL"] = ""
os.environ["LOCAL_DB_PATH"] = ""
os.environ["NEXA_DEBUG"] = "false"

import httpx
import pytest
from fastapi.testclient import TestClient

ADMIN_AUTH = {"email": "admin@nexa.id", "password": "s3cret"}


def _drop_db():
    DB_FILE.unlink(missing_ok=True)


@pytest.fixture()
def api():
    """TestClient on a fresh database (startup creates the tables)."""
    _drop_db()
    from nexa.main import app
    with TestClient(app) as client:
        yield client


@pytest.fixture()
async def asgi_client():
    """NexaAPIClient wired to the app in-process, on a fresh database."""
    _drop_db()
    from nexa.main import app
    from nexa.db.session import init_models
    from nexa.clients.nexa_client import NexaAPIClient

    await init_models()
    client = NexaAPIClient(base_url="http://nexa.test", transport=httpx.ASGITransport(app=app), backoff=0)
    yield client
    await client.close()
