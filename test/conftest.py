import asyncio

import pytest
from fastapi.testclient import TestClient

from auth_service import AuthService
from category_service import CategoryService
from config import Settings
from database import Database
from expense_service import ExpenseService
from main import create_app

run = asyncio.run

SECRET = "test-secret"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_path=str(tmp_path / "expense_tracker.db"),
        jwt_secret=SECRET,
        uploads_dir=str(tmp_path / "uploads"),
        max_file_size=1024,
        log_level="WARNING",
    )


@pytest.fixture
def db(settings) -> Database:
    database = Database(settings.database_path)
    database.init_db()
    return database


@pytest.fixture
def auth(db) -> AuthService:
    return AuthService(db, SECRET)


@pytest.fixture
def categories(db) -> CategoryService:
    return CategoryService(db)


@pytest.fixture
def expenses(db) -> ExpenseService:
    return ExpenseService(db)


@pytest.fixture
def users(auth) -> dict:
    """Two regular users and one admin, keyed by username."""
    alice = run(auth.register("alice", "alice@example.com", "SecurePass123!"))
    bob = run(auth.register("bob", "bob@example.com", "SecurePass123!"))
    root = run(auth.register("root", "root@example.com", "SecurePass123!", role="admin"))
    return {"alice": alice["id"], "bob": bob["id"], "root": root["id"]}


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as test_client:
        yield test_client
