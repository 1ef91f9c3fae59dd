"""Shared fixtures: a migrated temp-file database, repository and pipeline wiring."""

import pytest

from lead_intel.analysis.extraction import Analyzer
from lead_intel.config import Config
from lead_intel.db.database import Database
from lead_intel.db.migrations import run_migrations
from lead_intel.db.repository import ResearchRepository
from lead_intel.pipeline import ResearchPipeline
from lead_intel.progress.broadcaster import ProgressBroadcaster

from fakes import FakeCompleter, FakeDiscovery, FakeStrategy


@pytest.fixture
def db(tmp_path):
    database = Database(str(tmp_path / "test.db"))
    database.connect()
    run_migrations(database)
    yield database
    database.close()


@pytest.fixture
def repo(db):
    return ResearchRepository(db)


@pytest.fixture
def config(tmp_path):
    return Config(
        anthropic_api_key="test-anthropic",
        openai_api_key="test-openai",
        search_provider="duckduckgo",
        jina_delay_ms=0,
        scrape_timeout=5,
        db_path=str(tmp_path / "test.db"),
    )


@pytest.fixture
def broadcaster():
    return ProgressBroadcaster(queue_size=100, backlog_size=200)


@pytest.fixture
def strategy():
    return FakeStrategy()


@pytest.fixture
def discovery():
    return FakeDiscovery()


@pytest.fixture
def completer():
    return FakeCompleter()


@pytest.fixture
def pipeline(config, repo, broadcaster, discovery, strategy, completer):
    return ResearchPipeline(
        config,
        repo,
        broadcaster,
        discovery=discovery,
        analyzer=Analyzer(config, complete=completer),
        strategy_factory=lambda name: strategy,
    )
