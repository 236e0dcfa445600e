# pagebot/infra/migrations_async.py
"""
Async database migrations runner (asyncpg).
"""
from __future__ import annotations
from pathlib import Path

from pagebot.infra.db_async import db_conn
from pagebot.infra.logging_config import get_logger

logger = get_logger(__name__)


def _sql_dir() -> Path:
    # pagebot/infra/sql
    return Path(__file__).resolve().parent / "sql"


def pending_files(applied: set[str], sql_dir: Path | None = None) -> list[Path]:
    """SQL files not yet recorded in schema_migrations, in filename order."""
    sql_dir = sql_dir or _sql_dir()
    files = sorted(p for p in sql_dir.glob("*.sql") if p.is_file())
    return [p for p in files if p.name not in applied]


async def apply_migrations() -> dict:
    """
    Apply SQL migrations from pagebot/infra/sql.

    Files run in filename order inside a single transaction and are tracked
    in the schema_migrations table.

    Returns:
        dict with keys ok, applied (filenames applied in this run), count
    """
    async with db_conn(autocommit=False) as conn:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations(
              version text PRIMARY KEY,
              applied_at timestamptz NOT NULL DEFAULT now()
            )
            """
        )

        rows = await conn.fetch("SELECT version FROM schema_migrations")
        applied = {row['version'] for row in rows}

        applied_now = []
        for p in pending_files(applied):
            version = p.name
            logger.info(f"Applying migration: {version}")
            await conn.execute(p.read_text(encoding="utf-8"))
            await conn.execute(
                "INSERT INTO schema_migrations(version) VALUES ($1)",
                version
            )
            applied_now.append(version)
            logger.info(f"Migration {version} applied successfully")

    logger.info(f"Migrations complete: {len(applied_now)} applied")
    return {"ok": True, "applied": applied_now, "count": len(applied_now)}
