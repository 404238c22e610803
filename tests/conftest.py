"""Pytest configuration and fixtures."""

import json
import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src import models  # noqa: F401
from src.api.dependencies import get_session_factory
from src.config import Settings
from src.database import Base, get_db
from src.main import app
from src.schemas.recipe import NormalizedRecipe
from src.services.batch_tracker import BatchTracker
from src.services.recipe_service import RecipeService

# Use test database - PostgreSQL in Docker, SQLite locally
if os.getenv("DATABASE_URL"):
    # Running in Docker - use PostgreSQL test database
    SQLALCHEMY_DATABASE_URL = os.getenv("DATABASE_URL").replace(
        "/recipe_import", "/recipe_import_test"
    )
else:
    # Running locally - use SQLite
    SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

# Import runs write from worker threads; give SQLite room to wait for its file lock
connect_args = (
    {"check_same_thread": False, "timeout": 30} if "sqlite" in SQLALCHEMY_DATABASE_URL else {}
)
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=connect_args)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create test database schema once at the start of the test session."""
    if "postgresql" in SQLALCHEMY_DATABASE_URL:
        # For PostgreSQL, create the test database
        from sqlalchemy_utils import create_database, database_exists

        # Create test database if it doesn't exist
        if not database_exists(SQLALCHEMY_DATABASE_URL):
            create_database(SQLALCHEMY_DATABASE_URL)

    Base.metadata.create_all(bind=engine)
    yield
    # Don't drop database - just leave it for next run (each test cleans up after itself)


@pytest.fixture(scope="function", autouse=True)
def db():
    """Create a fresh database session for each test with cleanup."""
    session = TestingSessionLocal()

    yield session

    # Clean up all data after test
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.close()


@pytest.fixture
def session_factory():
    """Session factory for services that open their own sessions."""
    return TestingSessionLocal


@pytest.fixture
def settings(tmp_path):
    """Settings tuned for fast, isolated import runs."""
    return Settings(
        database_url=SQLALCHEMY_DATABASE_URL,
        import_fetch_timeout_seconds=10,
        import_max_workers=2,
        import_persist_retries=0,
        import_work_dir=str(tmp_path / "work"),
        import_local_roots=[str(tmp_path)],
    )


@pytest.fixture
def tracker(session_factory):
    return BatchTracker(session_factory)


@pytest.fixture(scope="function")
def client(db):
    """Create a test client with database override."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_recipe(db):
    """Store a recipe directly, bypassing the import pipeline."""

    def _make(name: str, **fields):
        is_public = fields.pop("is_public", True)
        normalized = NormalizedRecipe(name=name, **fields)
        recipe = RecipeService(db).create_recipe(normalized, source_repository="test-repo")
        if not is_public:
            recipe.is_public = False
            db.commit()
            db.refresh(recipe)
        return recipe

    return _make


@pytest.fixture
def recipe_repository(tmp_path):
    """Write recipe files into a temporary directory and return its path."""
    root = tmp_path / "recipes"
    root.mkdir()

    def _write(files: dict[str, object]):
        for relative, content in files.items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            if not isinstance(content, str):
                content = json.dumps(content)
            path.write_text(content, encoding="utf-8")
        return root

    return _write
