"""Tests for the SQL migration runner."""

from lead_intel.db.database import Database
from lead_intel.db.migrations import MIGRATIONS_DIR, pending_migrations, run_migrations


def _open(path):
    db = Database(str(path))
    db.connect()
    return db


class TestRunMigrations:
    def test_fresh_database_applies_bundled_files_once(self, tmp_path):
        db = _open(tmp_path / "fresh.db")

        applied = run_migrations(db)

        assert applied == sorted(p.name for p in MIGRATIONS_DIR.glob("*.sql"))
        assert run_migrations(db) == []
        assert pending_migrations(db) == []
        tables = {r["name"] for r in db.fetchall("SELECT name FROM sqlite_master WHERE type = 'table'")}
        assert {"research_jobs", "sources", "job_sources"} <= tables
        db.close()

    def test_only_new_files_run_in_filename_order(self, tmp_path):
        migrations = tmp_path / "migrations"
        migrations.mkdir()
        (migrations / "001_notes.sql").write_text("CREATE TABLE notes (id INTEGER PRIMARY KEY);")
        db = _open(tmp_path / "custom.db")
        assert run_migrations(db, migrations) == ["001_notes.sql"]

        (migrations / "003_tags.sql").write_text("CREATE TABLE tags (id INTEGER PRIMARY KEY);")
        (migrations / "002_body.sql").write_text("ALTER TABLE notes ADD COLUMN body TEXT;")

        assert [p.name for p in pending_migrations(db, migrations)] == ["002_body.sql", "003_tags.sql"]
        assert run_migrations(db, migrations) == ["002_body.sql", "003_tags.sql"]
        db.execute("INSERT INTO notes (body) VALUES ('hello')")
        assert db.fetchone("SELECT body FROM notes")["body"] == "hello"
        db.close()
