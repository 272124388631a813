import logging
import subprocess
import sys
from pathlib import Path

from marketchat.core.config import settings

logger = logging.getLogger(__name__)


def ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    if "sqlite" not in database_url or ":memory:" in database_url:
        return

    db_path = database_url.split("://", 1)[-1]
    # sqlite:///relative.db and sqlite:////absolute.db
    if db_path.startswith("/"):
        db_path = db_path[1:]
    db_dir = Path(db_path).parent
    if not db_dir.exists():
        logger.info(f"Creating database directory: {db_dir}")
        db_dir.mkdir(parents=True, exist_ok=True)


async def run_migrations():
    """Run database migrations using alembic programmatically."""
    try:
        logger.info("Running database migrations...")
        ensure_sqlite_directory(settings.DATABASE_URL)

        try:
            subprocess.run(
                ["alembic", "--version"],
                check=True,
                capture_output=True,
                text=True,
            )
            alembic_cmd = ["alembic"]
        except (subprocess.CalledProcessError, FileNotFoundError):
            alembic_cmd = [sys.executable, "-m", "alembic"]

        # alembic.ini lives in the project root
        project_root = Path(__file__).parent.parent.parent

        result = subprocess.run(
            alembic_cmd + ["upgrade", "head"],
            check=True,
            capture_output=True,
            text=True,
            cwd=str(project_root),
        )
        logger.info("Migrations completed successfully")
        if result.stdout:
            logger.info(f"Alembic output: {result.stdout}")

    except subprocess.CalledProcessError as e:
        logger.error(f"Migration failed with exit code {e.returncode}")
        if e.stdout:
            logger.error(f"Stdout: {e.stdout}")
        if e.stderr:
            logger.error(f"Stderr: {e.stderr}")
        raise RuntimeError("Database migration failed") from e
    except Exception as e:
        logger.error(f"Unexpected error during migration: {e}")
        raise RuntimeError("Database migration failed") from e
