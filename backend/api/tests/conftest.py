import pytest
import pytest_asyncio
import httpx

import backend.mongo.db as db
from backend.api.tests.fakes import FakeDatabase, FakeRedis


@pytest.fixture
def fake_db(monkeypatch):
    database = FakeDatabase()
    monkeypatch.setattr(db, "_mongo_db", database)
    return database


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture(autouse=True)
def credentials_file(tmp_path, monkeypatch):
    path = tmp_path / "basic_auth.txt"
    path.write_text("# usuarios da API\nadmin:admin123\n", encoding="utf-8")
    monkeypatch.setenv("BASIC_AUTH_CREDENTIALS_FILE", str(path))
    return path


@pytest.fixture
def api_app(fake_db, fake_redis, monkeypatch):
    from backend.api import app as app_module
    monkeypatch.setattr(app_module.intake_service, "redis_factory", lambda url: fake_redis)
    return app_module


@pytest_asyncio.fixture
async def client(api_app):
    transport = httpx.ASGITransport(app=api_app.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
