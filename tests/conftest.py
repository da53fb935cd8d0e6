from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from support_desk.api.server import create_app
from support_desk.auth.sessions import SessionManager
from support_desk.config import Config
from support_desk.db import init_db

from tests.helpers import FakeBilling


@pytest.fixture
def cfg(tmp_path) -> Config:
    return Config(
        DB_DSN=str(tmp_path / "support_desk.sqlite"),
        SESSION_SECRET="test-secret",
        STRIPE_SECRET_KEY="sk_test_fake",
        STRIPE_WEBHOOK_SECRET=None,
        AUTH_BOOTSTRAP_ADMIN_EMAIL="",
        AUTH_BOOTSTRAP_ADMIN_PASSWORD="",
        CORS_ALLOW_ORIGIN="http://frontend.test",
    )


@pytest.fixture
def db(cfg) -> str:
    init_db(cfg.DB_DSN)
    return cfg.DB_DSN


@pytest.fixture
def billing(cfg) -> FakeBilling:
    return FakeBilling(cfg)


@pytest.fixture
def sessions(db, cfg, billing) -> SessionManager:
    return SessionManager(cfg, billing)


@pytest.fixture
def app(cfg, billing):
    return create_app(cfg, billing=billing)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
