"""Database connection management with WAL mode, pragmas and migrations."""

import hashlib
from datetime import datetime
from pathlib import Path
from typing import Optional

import aiosqlite
import structlog

logger = structlog.get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


def calculate_checksum(file_path: Path) -> str:
    """
    Calculate SHA-256 checksum of migration file.

    Args:
        file_path: Path to migration file

    Returns:
        Hexadecimal SHA-256 checksum
    """
    return hashlib.sha256(file_path.read_bytes()).hexdigest()


def discover_migrations(migrations_dir: Path) -> list[tuple[str, Path]]:
    """
    Discover migrations in lexical order.

    Args:
        migrations_dir: Directory containing migration files

    Returns:
        List of (migration_name, migration_path) tuples in lexical order
    """
    return [(f.name, f) for f in sorted(migrations_dir.glob("*.sql"))]


class DatabaseManager:
    """Manages the SQLite connection with WAL mode and optimal pragmas."""

    def __init__(self, db_path: str | Path, migrations_dir: Optional[Path] = None):
        """
        Initialize database manager.

        Args:
            db_path: Path to SQLite database file
            migrations_dir: Directory of *.sql migrations (default: packaged migrations)
        """
        self.db_path = Path(db_path)
        self.migrations_dir = migrations_dir or MIGRATIONS_DIR
        self._connection: Optional[aiosqlite.Connection] = None

    async def get_connection(self) -> aiosqlite.Connection:
        """
        Get database connection with WAL mode and optimized pragmas.

        Returns:
            SQLite connection with WAL mode enabled

        Note:
            Connection is cached after first creation.
            All pragmas are set on connection creation.
        """
        if self._connection is not None:
            return self._connection

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(str(self.db_path))

        try:
            await conn.execute("PRAGMA foreign_keys=ON")
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute("PRAGMA synchronous=NORMAL")
            await conn.execute("PRAGMA busy_timeout=5000")

            cursor = await conn.execute("PRAGMA journal_mode")
            mode = await cursor.fetchone()
            await cursor.close()

            if mode[0].lower() != 'wal':
                raise RuntimeError(
                    f"Failed to enable WAL mode. Expected 'wal', got '{mode[0]}'."
                )
        except Exception:
            await conn.close()
            raise

        logger.info(
            "database_connection_established",
            db_path=str(self.db_path),
            journal_mode=mode[0]
        )

        self._connection = conn
        return conn

    async def init_db(self) -> list[str]:
        """
        Apply pending migrations with checksum verification.

        Returns:
            Names of migrations applied by this call

        Raises:
            RuntimeError: If an applied migration was modified afterwards
        """
        conn = await self.get_connection()

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_migrations (
                migration_name TEXT PRIMARY KEY,
                checksum TEXT NOT NULL,
                applied_at INTEGER NOT NULL
            ) STRICT
        """)
        await conn.commit()

        cursor = await conn.execute("SELECT migration_name, checksum FROM schema_migrations")
        applied = {row[0]: row[1] for row in await cursor.fetchall()}
        await cursor.close()

        newly_applied = []
        for name, path in discover_migrations(self.migrations_dir):
            checksum = calculate_checksum(path)

            if name in applied:
                if applied[name] != checksum:
                    logger.error("migration_checksum_mismatch", migration=name)
                    raise RuntimeError(
                        f"Migration {name} was modified after being applied "
                        f"(expected {applied[name]}, got {checksum})"
                    )
                continue

            try:
                await conn.executescript(path.read_text(encoding="utf-8"))
                await conn.execute(
                    "INSERT INTO schema_migrations (migration_name, checksum, applied_at) VALUES (?, ?, ?)",
                    (name, checksum, int(datetime.now().timestamp())),
                )
                await conn.commit()
            except Exception as e:
                await conn.rollback()
                logger.error("migration_failed", migration=name, error=str(e))
                raise

            logger.info("migration_applied", migration=name)
            newly_applied.append(name)

        logger.info(
            "database_initialized",
            db_path=str(self.db_path),
            applied_count=len(newly_applied)
        )
        return newly_applied

    async def close(self) -> None:
        """Close database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("database_connection_closed", db_path=str(self.db_path))
