import os

# 保险：就算 .env 不在也能跑，且不落盘
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("secret_key", "test_secret")
os.environ.setdefault("access_token_expire_minutes", "120")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import ecolend.models  # noqa: F401
from ecolend.db import get_session
from ecolend.main import app


@pytest.fixture()
def engine():
    # 每个用例一份全新的内存库
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture()
def client(engine):
    def override_get_session():
        with Session(engine) as session:
            try:
                yield session
            except Exception:
                session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


def register(client, email, password="secret123", display_name=None):
    r = client.post(
        "/auth/register",
        json={"email": email, "password": password, "display_name": display_name or email.split("@")[0]},
    )
    assert r.status_code == 200, r.text
    return r.json()


def login(client, email, password="secret123"):
    r = client.post("/auth/login", data={"username": email, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


@pytest.fixture()
def admin_headers(client):
    # 第一个注册的用户就是管理员
    register(client, "admin@ecolend.test")
    return login(client, "admin@ecolend.test")


@pytest.fixture()
def employee(client, admin_headers):
    user = register(client, "emp@ecolend.test")
    return user, login(client, "emp@ecolend.test")


def grant(client, admin_headers, user_id, role):
    r = client.post(f"/users/{user_id}/roles", json={"role": role}, headers=admin_headers)
    assert r.status_code == 200, r.text
    return r.json()


def create_equipment(client, headers, name="Harness", category="Safety", total_quantity=5, **extra):
    r = client.post(
        "/equipment",
        json={"name": name, "category": category, "total_quantity": total_quantity, **extra},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    return r.json()
