import importlib
import pytest
import fakeredis
import cuescore.config as config
import cuescore.storage as storage


@pytest.fixture(autouse=True)
def use_tmp_db(tmp_path, monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("BATCH_LIMIT", raising=False)
    monkeypatch.delenv("DEFAULT_LANGUAGE", raising=False)
    monkeypatch.setenv("APP_ENV", "development")
    importlib.reload(config)
    importlib.reload(storage)
    monkeypatch.setattr(storage, "DB_FILE", tmp_path / "cuescore.db")
    monkeypatch.setattr(storage, "_redis", fakeredis.FakeRedis())
    storage.invalidate_cache()
    yield
    storage.invalidate_cache()


@pytest.fixture
def client():
    from fastapi.testclient import TestClient

    api = importlib.reload(importlib.import_module("cuescore.api"))
    return TestClient(api.app)


@pytest.fixture
def make_user():
    from cuescore.services import users as user_service

    def make(name):
        user, _, _ = user_service.register_user(name)
        return user

    return make


@pytest.fixture(autouse=True)
def inject_auth_header(monkeypatch):
    from fastapi.testclient import TestClient

    orig_request = TestClient.request

    def wrapped(self, method, url, *args, **kwargs):
        headers = dict(kwargs.get("headers") or {})
        kwargs["headers"] = headers

        if "json" in kwargs and isinstance(kwargs["json"], dict):
            token = kwargs["json"].pop("token", None)
            if token:
                headers["Authorization"] = f"Bearer {token}"

        if "params" in kwargs and isinstance(kwargs["params"], dict):
            token = kwargs["params"].pop("token", None)
            if token:
                headers["Authorization"] = f"Bearer {token}"

        return orig_request(self, method, url, *args, **kwargs)

    monkeypatch.setattr(TestClient, "request", wrapped)
    yield
    monkeypatch.setattr(TestClient, "request", orig_request)
