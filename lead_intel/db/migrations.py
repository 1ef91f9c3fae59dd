"""Sequential ``.sql`` migrations for the research store.

Files in ``migrations/`` run in filename order, once each; applied names are
recorded in the ``_migrations`` table.
"""

from __future__ import annotations

import logging
from pathlib import Path

from lead_intel.db.database import Database

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

_LEDGER_DDL = """
    CREATE TABLE IF NOT EXISTS _migrations (
        id INTEGER PRIMARY KEY,
        filename TEXT NOT NULL UNIQUE,
        applied_at TEXT NOT NULL DEFAULT (datetime('now'))
    );
"""


def pending_migrations(db: Database, migrations_dir: Path = MIGRATIONS_DIR) -> list[Path]:
    """Migration files not yet recorded as applied, in the order they will run."""
    db.executescript(_LEDGER_DDL)
    applied = {row["filename"] for row in db.fetchall("SELECT filename FROM _migrations")}
    return [p for p in sorted(migrations_dir.glob("*.sql")) if p.name not in applied]


def run_migrations(db: Database, migrations_dir: Path = MIGRATIONS_DIR) -> list[str]:
    """Apply pending migrations. Returns the filenames applied by this call."""
    newly_applied: list[str] = []
    for path in pending_migrations(db, migrations_dir):
        logger.info("Applying migration: %s", path.name)
        db.executescript(path.read_text(encoding="utf-8"))
        db.execute("INSERT INTO _migrations (filename) VALUES (?)", (path.name,))
        db.commit()
        newly_applied.append(path.name)
    if not newly_applied:
        logger.debug("Schema up to date (%s)", migrations_dir)
    return newly_applied
