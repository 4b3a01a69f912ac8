from sqlalchemy import text

from database import SQLITE_BUSY_TIMEOUT_MS, build_engine


def test_sqlite_engine_applies_pragmas(tmp_path) -> None:
    engine = build_engine(f"sqlite:///{tmp_path / 'budget.db'}")

    with engine.connect() as conn:
        assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1
        assert conn.execute(text("PRAGMA journal_mode")).scalar() == "wal"
        assert (
            conn.execute(text("PRAGMA busy_timeout")).scalar()
            == SQLITE_BUSY_TIMEOUT_MS
        )
    engine.dispose()
