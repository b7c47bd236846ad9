"""
Pytest configuration and fixtures for the import service tests.

Every test gets its own SQLite database file, job registry and validator set,
so tests never share job state or stored records.
"""

import pytest
from fastapi.testclient import TestClient

from catalog_import.core.config import Settings
from catalog_import.db.models import SqlRecordStore
from catalog_import.db.session import build_engine
from catalog_import.domain.imports.executor import ImportExecutor
from catalog_import.domain.imports.registry import JobRegistry
from catalog_import.domain.imports.table_schemas import build_default_validators
from catalog_import.main import create_app


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'imports.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    store = SqlRecordStore(engine)
    store.create_tables()
    return store


@pytest.fixture
def registry():
    registry = JobRegistry()
    yield registry
    registry.close()


@pytest.fixture
def validators():
    return build_default_validators()


@pytest.fixture
def executor(registry, validators, store):
    return ImportExecutor(registry, validators, store, progress_every_rows=1)


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'api.db'}",
        max_concurrent_jobs=2,
        job_retention_hours=0,
        upload_max_file_size_mb=1,
        progress_update_interval_rows=1,
    )


@pytest.fixture
def app(test_settings, engine):
    return create_app(test_settings, engine=engine)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
