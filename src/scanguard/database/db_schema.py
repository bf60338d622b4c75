"""
Database schema initialization.

Handles creation of tables, indexes, triggers, and schema version tracking.
"""

import aiosqlite
from scanguard.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Creates the tables, indexes and triggers ScanGuard needs."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create all database tables, indexes, and triggers if missing.

        Args:
            db: Open database connection
        """
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._create_triggers(db)
        await SchemaManager._update_schema_version(db)
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized")

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        """Create all required database tables."""
        await db.execute("""
            CREATE TABLE IF NOT EXISTS guild_settings (
                guild_id INTEGER PRIMARY KEY,
                detection_enabled INTEGER NOT NULL DEFAULT 1,
                auto_delete INTEGER NOT NULL DEFAULT 1,
                auto_ban INTEGER NOT NULL DEFAULT 1,
                alert_channel_id INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS guild_moderator_roles (
                guild_id INTEGER NOT NULL,
                role_id INTEGER NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (guild_id, role_id),
                FOREIGN KEY (guild_id) REFERENCES guild_settings(guild_id) ON DELETE CASCADE
            )
        """)

        # One authoritative offense record per user, shared by all guilds
        await db.execute("""
            CREATE TABLE IF NOT EXISTS users (
                user_id TEXT PRIMARY KEY,
                offense_count INTEGER NOT NULL DEFAULT 0 CHECK (offense_count >= 0),
                globally_banned INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS detections (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                guild_id INTEGER NOT NULL,
                channel_id INTEGER NOT NULL,
                message_id INTEGER NOT NULL,
                image_url TEXT NOT NULL DEFAULT '',
                image_hash TEXT NOT NULL DEFAULT '',
                method TEXT NOT NULL,
                confidence REAL NOT NULL DEFAULT 0,
                flagged INTEGER NOT NULL DEFAULT 0,
                requires_review INTEGER NOT NULL DEFAULT 0,
                action_taken TEXT NOT NULL DEFAULT 'none',
                processing_time_ms INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # Blocklist rows are only ever deactivated, never deleted
        await db.execute("""
            CREATE TABLE IF NOT EXISTS hash_database (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                hash TEXT NOT NULL,
                hash_type TEXT NOT NULL DEFAULT 'perceptual',
                source TEXT NOT NULL DEFAULT '',
                severity TEXT NOT NULL DEFAULT 'high' CHECK (severity IN ('low', 'medium', 'high')),
                active INTEGER NOT NULL DEFAULT 1,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS sanctions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                guild_id INTEGER NOT NULL,
                level INTEGER NOT NULL CHECK (level IN (1, 2)),
                kind TEXT NOT NULL,
                active INTEGER NOT NULL DEFAULT 0,
                reason TEXT NOT NULL DEFAULT '',
                expires_at INTEGER,
                detection_id INTEGER,
                decided_by TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (detection_id) REFERENCES detections(id)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS moderator_reviews (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                detection_id INTEGER,
                sanction_id INTEGER,
                status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'approved', 'rejected')),
                moderator_id TEXT,
                notes TEXT NOT NULL DEFAULT '',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                reviewed_at TIMESTAMP,
                FOREIGN KEY (detection_id) REFERENCES detections(id),
                FOREIGN KEY (sanction_id) REFERENCES sanctions(id)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        """Create indexes for the hot lookups."""
        await db.execute("CREATE INDEX IF NOT EXISTS idx_moderator_roles_guild ON guild_moderator_roles(guild_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_hash_database_active ON hash_database(active, id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_hash_database_hash ON hash_database(hash)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_detections_message ON detections(message_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_detections_user ON detections(user_id, guild_id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_sanctions_user ON sanctions(user_id, created_at)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_sanctions_kind ON sanctions(kind)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_reviews_status ON moderator_reviews(status)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_reviews_sanction ON moderator_reviews(sanction_id)")

    @staticmethod
    async def _create_triggers(db: aiosqlite.Connection) -> None:
        """Create triggers for automatic timestamp updates."""
        for table, key in (("guild_settings", "guild_id"), ("users", "user_id"), ("sanctions", "id")):
            await db.execute(f"""
                CREATE TRIGGER IF NOT EXISTS update_{table}_timestamp
                AFTER UPDATE ON {table}
                FOR EACH ROW
                WHEN NEW.updated_at = OLD.updated_at
                BEGIN
                    UPDATE {table} SET updated_at = CURRENT_TIMESTAMP
                    WHERE {key} = NEW.{key};
                END
            """)

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        """Update schema version tracking."""
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
