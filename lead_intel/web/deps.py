"""Dependency injection for FastAPI: shared config, database, broadcaster, pipeline."""

from __future__ import annotations

from functools import lru_cache

from lead_intel.config import Config, load_config
from lead_intel.db.database import Database
from lead_intel.db.migrations import run_migrations
from lead_intel.db.repository import ResearchRepository
from lead_intel.pipeline import ResearchPipeline
from lead_intel.progress.broadcaster import ProgressBroadcaster


@lru_cache
def get_config() -> Config:
    return load_config()


_db_instance: Database | None = None
_broadcaster: ProgressBroadcaster | None = None
_pipeline: ResearchPipeline | None = None


def get_db() -> Database:
    global _db_instance
    if _db_instance is None or _db_instance.conn is None:
        _db_instance = Database(get_config().db_path)
        _db_instance.connect()
        run_migrations(_db_instance)
    return _db_instance


def get_broadcaster() -> ProgressBroadcaster:
    global _broadcaster
    if _broadcaster is None:
        cfg = get_config()
        _broadcaster = ProgressBroadcaster(
            queue_size=cfg.broadcast_queue_size,
            backlog_size=cfg.broadcast_backlog,
            retained_jobs=cfg.broadcast_retained_jobs,
        )
    return _broadcaster


def get_pipeline() -> ResearchPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = ResearchPipeline(
            get_config(), ResearchRepository(get_db()), get_broadcaster(),
        )
    return _pipeline


def close_db() -> None:
    global _db_instance, _pipeline
    if _db_instance:
        _db_instance.close()
        _db_instance = None
    _pipeline = None
