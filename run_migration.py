"""
SQL migration runner
Usage: python run_migration.py [migration_file.sql ...]
Without arguments every .sql file in migrations/ is applied in name order.
"""
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from sqlalchemy import text

from tutorhub.database import engine

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


def split_statements(sql: str) -> list[str]:
    """Split a script on ';' after dropping '--' comment lines"""
    lines = [line for line in sql.splitlines() if not line.strip().startswith("--")]
    return [s.strip() for s in "\n".join(lines).split(";") if s.strip()]


def run_migration(migration_file: Path) -> None:
    if not migration_file.exists():
        raise FileNotFoundError(f"Migration file not found: {migration_file}")

    statements = split_statements(migration_file.read_text())
    logger.info(f"📄 {migration_file.name}: {len(statements)} statement(s)")

    # One transaction per file
    with engine.begin() as conn:
        for i, stmt in enumerate(statements, 1):
            logger.info(f"  Executing statement {i}/{len(statements)}...")
            conn.execute(text(stmt))

    logger.info(f"✅ {migration_file.name} applied")


if __name__ == "__main__":
    files = [Path(arg) for arg in sys.argv[1:]] or sorted(MIGRATIONS_DIR.glob("*.sql"))
    if not files:
        logger.error("No migration files found")
        sys.exit(1)

    try:
        for path in files:
            run_migration(path)
    except Exception as e:
        logger.error(f"❌ Migration failed: {e}")
        sys.exit(1)
