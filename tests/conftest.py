from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest
from sqlalchemy.orm import Session

from audioshelf.config_manager import ServerSettings, reset_settings
from audioshelf.database import Base, dispose_engine, get_engine
from audioshelf.database.engine import get_session_factory
from audioshelf.library import LibraryQueryService

from tests.helpers.library_factory import LibraryFactory


@pytest.fixture
def settings() -> ServerSettings:
    return ServerSettings(sorting_ignore_prefix=False, recent_days=60)


@pytest.fixture
def database(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, settings: ServerSettings) -> Iterator[None]:
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'library.db'}")
    dispose_engine()
    reset_settings(settings)
    Base.metadata.create_all(get_engine())
    try:
        yield
    finally:
        dispose_engine()
        reset_settings()


@pytest.fixture
def session(database: None) -> Iterator[Session]:
    db_session = get_session_factory()()
    try:
        yield db_session
    finally:
        db_session.close()


@pytest.fixture
def factory(session: Session) -> LibraryFactory:
    return LibraryFactory(session)


@pytest.fixture
def service(database: None, settings: ServerSettings) -> LibraryQueryService:
    return LibraryQueryService(settings=settings)
