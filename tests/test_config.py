# tests/test_config.py

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from revisions.core.config import Settings
from revisions.core.logging import build_logging_config, init_logging
from revisions.db.session import get_db, get_engine, get_sessionmaker
from revisions.schemas.record import OwnerRef
from revisions.schemas.snapshot import SnapshotDocument
from revisions.services.revision_service import create_revision


def test_settings_defaults(monkeypatch):
    monkeypatch.delenv("REVISIONS_TABLE", raising=False)
    settings = Settings(_env_file=None)
    assert settings.DATABASE_URL.startswith("sqlite+aiosqlite://")
    assert settings.REVISIONS_TABLE == "revisions"
    assert settings.DATABASE_ECHO is False


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("REVISIONS_TABLE", "post_revisions")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    settings = Settings(_env_file=None)
    assert settings.REVISIONS_TABLE == "post_revisions"
    assert settings.LOG_LEVEL == "DEBUG"


def test_logging_config_writes_into_log_dir(tmp_path):
    config = build_logging_config(str(tmp_path), "DEBUG")
    assert config["handlers"]["audit"]["filename"] == str(tmp_path / "audit.log")
    assert config["loggers"]["revisions"]["level"] == "DEBUG"


async def test_audit_log_records_revision_creation(tmp_path, db):
    log_dir = tmp_path / "logs"
    init_logging(log_dir=str(log_dir), level="info")
    try:
        revision = await create_revision(db, OwnerRef(1, "post"), SnapshotDocument())
        for handler in logging.getLogger("audit").handlers:
            handler.flush()
    finally:
        for name in ("revisions", "audit"):
            logger = logging.getLogger(name)
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()
            logger.propagate = True

    audit = (log_dir / "audit.log").read_text(encoding="utf-8")
    assert f"Revision created: id={revision.id} owner=post:1" in audit


async def test_get_db_yields_a_session_on_the_default_engine():
    get_sessionmaker.cache_clear()
    get_engine.cache_clear()

    sessions = get_db()
    session = await sessions.__anext__()
    assert isinstance(session, AsyncSession)
    assert session.bind is get_engine()
    await sessions.aclose()
    await get_engine().dispose()
