from __future__ import annotations

import logging
import traceback
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from medclose.infrastructure.db.engine import get_engine

logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).resolve().parent.parent
MIGRATIONS_DIR = PACKAGE_DIR / "infrastructure" / "db" / "migrations"
REQUIRED_TABLES = {"hospital_closures", "hospital_closure_group_status", "entries", "medical_acts"}


def check_startup_prerequisites(root_dir: Path, db_file: Path) -> bool:
    if not (root_dir / "alembic.ini").exists():
        logger.error("alembic.ini not found in %s", root_dir)
        return False
    if not MIGRATIONS_DIR.exists():
        logger.error("Migrations directory not found: %s", MIGRATIONS_DIR)
        return False
    try:
        test_file = db_file.parent / ".write_test"
        test_file.write_text("ok", encoding="utf-8")
        test_file.unlink(missing_ok=True)
    except OSError:
        logger.exception("Database directory is not writable: %s", db_file.parent)
        return False
    return True


def _write_migration_error(log_dir: Path, db_file: Path) -> None:
    try:
        error_path = log_dir / "migration_error.log"
        error_path.parent.mkdir(parents=True, exist_ok=True)
        with error_path.open("a", encoding="utf-8") as handle:
            handle.write("\n--- Migration error ---\n")
            handle.write(f"DB: {db_file}\n")
            handle.write(f"Migrations: {MIGRATIONS_DIR}\n")
            handle.write(traceback.format_exc())
    except OSError:
        logger.exception("Failed to write migration error log")


def run_migrations(root_dir: Path, database_url: str, log_dir: Path, db_file: Path) -> bool:
    try:
        cfg = Config(str(root_dir / "alembic.ini"))
        cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
        cfg.set_main_option("sqlalchemy.url", database_url)
        # keep the application's logging handlers
        cfg.attributes["configure_logger"] = False
        command.upgrade(cfg, "head")
        return True
    except Exception:  # noqa: BLE001
        logger.exception("Failed to run migrations")
        _write_migration_error(log_dir, db_file)
        return False


def ensure_schema_compatibility(database_url: str, db_file: Path) -> bool:
    try:
        inspector = inspect(get_engine(database_url))
        missing = REQUIRED_TABLES - set(inspector.get_table_names())
    except Exception:  # noqa: BLE001
        logger.exception("Failed to verify database schema")
        return False
    if missing:
        logger.error(
            "DB schema mismatch. Missing tables: %s. DB path: %s",
            ", ".join(sorted(missing)),
            db_file,
        )
        return False
    return True


def initialize_database(
    *,
    root_dir: Path,
    db_file: Path,
    database_url: str,
    log_dir: Path,
) -> bool:
    if not check_startup_prerequisites(root_dir, db_file):
        return False
    if not run_migrations(root_dir, database_url, log_dir, db_file):
        return False
    return ensure_schema_compatibility(database_url, db_file)
