"""Apply SQL migrations sequentially using the shared asyncpg pool."""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path

from pacer.libs.logging_utils import configure_logging
from pacer.libs.schemas.db import close_async_pool, connection

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"
_COMMENT_RE = re.compile(r"--.*?$|/\*.*?\*/", re.MULTILINE | re.DOTALL)


def _split_sql(sql: str) -> list[str]:
    """Return individual statements stripped of comments and whitespace."""

    cleaned = _COMMENT_RE.sub("", sql)
    return [chunk.strip() for chunk in cleaned.split(";") if chunk.strip()]


def _sorted_migration_paths(directory: Path = MIGRATIONS_DIR) -> list[Path]:
    if not directory.exists():
        return []
    return sorted(p for p in directory.iterdir() if p.suffix == ".sql")


async def apply_migrations(directory: Path = MIGRATIONS_DIR) -> int:
    """Execute every migration file in order, one transaction per file.

    Returns the number of files applied.
    """

    migration_files = _sorted_migration_paths(directory)
    if not migration_files:
        return 0

    applied = 0
    for path in migration_files:
        statements = _split_sql(path.read_text(encoding="utf-8"))
        if not statements:
            continue
        async with connection(transactional=True) as conn:
            for statement in statements:
                await conn.execute(statement)
        applied += 1
        logger.info("migration applied", extra={"migration": path.name, "statements": len(statements)})
    return applied


async def _main() -> None:
    try:
        await apply_migrations()
    finally:
        await close_async_pool()


def main() -> None:  # pragma: no cover - CLI entrypoint
    configure_logging()
    asyncio.run(_main())


if __name__ == "__main__":  # pragma: no cover
    main()
