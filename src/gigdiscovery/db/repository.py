"""Database operations for gig listings."""

import base64
import json
import logging
import os
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Tuple

import aiosqlite

from ..models.listing import Listing, ListingPage
from ..services.discovery.filtering import matches_search_term
from ..services.discovery.sources import SourceUnavailable

# Set up logging
logger = logging.getLogger(__name__)

# Current schema version
SCHEMA_VERSION = 1

# Database configuration
BUSY_TIMEOUT_MS = 5000


class DatabaseError(SourceUnavailable):
    """Custom exception for database operations."""

    pass


class DatabaseConnectionError(DatabaseError):
    """Exception raised when database connection fails."""

    pass


class InvalidCursorError(DatabaseError):
    """Exception raised when a continuation cursor cannot be decoded."""

    pass


def encode_cursor(created_at: str, listing_id: str) -> str:
    """Encode the keyset position after a listing as an opaque token."""
    raw = json.dumps([created_at, listing_id]).encode()
    return base64.urlsafe_b64encode(raw).decode()


def decode_cursor(cursor: str) -> Tuple[str, str]:
    try:
        created_at, listing_id = json.loads(base64.urlsafe_b64decode(cursor.encode()))
    except (ValueError, TypeError) as e:
        raise InvalidCursorError(f"Invalid cursor: {cursor!r}") from e
    return str(created_at), str(listing_id)


def _timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


class ListingRepository:
    """SQLite-backed listing source.

    Serves status pages with keyset pagination, free-text search and the
    per-listing application lookups the discovery controller needs.
    """

    def __init__(self, db_path: Optional[str] = None):
        """Initialize the repository.

        Args:
            db_path: Path to the database file
        """
        if db_path is None:
            # Get database path from environment variable
            db_path = os.getenv("GIG_DISCOVERY_DB_PATH")
            if not db_path:
                # Fallback to default path
                project_root = Path(__file__).parent.parent.parent.parent
                db_dir = project_root / "databases"
                db_dir.mkdir(exist_ok=True, parents=True)
                db_path = str(db_dir / "gigs.db")
                logger.warning(f"No GIG_DISCOVERY_DB_PATH set, using default: {db_path}")

        self.db_path = db_path

        # Ensure the database directory exists (only if directory part is non-empty)
        db_dirname = os.path.dirname(self.db_path)
        if db_dirname:
            os.makedirs(db_dirname, exist_ok=True)

        logger.info(f"Database handle created for: {self.db_path}")

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            conn = await aiosqlite.connect(self.db_path)
        except (sqlite3.Error, OSError) as e:
            raise DatabaseConnectionError(f"Could not open {self.db_path}: {e}") from e
        try:
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA foreign_keys = ON")
            await conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
            yield conn
        except sqlite3.Error as e:
            logger.error(f"Database operation failed: {str(e)}")
            raise DatabaseError(f"Database operation failed: {str(e)}") from e
        finally:
            await conn.close()

    async def ainit(self) -> "ListingRepository":
        """
        Async helper so callers can do:

            repo = await ListingRepository(path).ainit()

        It ensures the schema exists.
        """
        await self.init_db()
        return self

    async def init_db(self) -> None:
        """Initialize the database and create necessary tables."""
        logger.info("Creating database tables...")
        async with self._connect() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)
            async with conn.execute(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            ) as cursor:
                row = await cursor.fetchone()
            current_version = row[0] if row else 0

            if current_version < SCHEMA_VERSION:
                logger.info(
                    f"Upgrading schema from version {current_version} to {SCHEMA_VERSION}"
                )
                await conn.execute("""
                    CREATE TABLE IF NOT EXISTS gigs (
                        id TEXT PRIMARY KEY,
                        title TEXT NOT NULL,
                        description TEXT DEFAULT '',
                        category TEXT DEFAULT '',
                        location TEXT DEFAULT '',
                        latitude REAL,
                        longitude REAL,
                        budget REAL NOT NULL DEFAULT 0,
                        duration TEXT DEFAULT '',
                        skills_required TEXT DEFAULT '[]',
                        work_type TEXT,
                        status TEXT NOT NULL DEFAULT 'open',
                        max_applicants INTEGER,
                        deadline TEXT,
                        employer_id TEXT,
                        employer_name TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT
                    )
                """)
                await conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_gigs_status_created ON gigs(status, created_at, id)"
                )
                await conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_gigs_category ON gigs(category)"
                )
                logger.info("Created gigs table")

                await conn.execute("""
                    CREATE TABLE IF NOT EXISTS applications (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        gig_id TEXT NOT NULL,
                        applicant_id TEXT NOT NULL,
                        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (gig_id) REFERENCES gigs(id)
                    )
                """)
                await conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_applications_gig ON applications(gig_id, applicant_id)"
                )
                logger.info("Created applications table")

                await conn.execute(
                    "INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
                )
                logger.info(f"Schema upgraded to version {SCHEMA_VERSION}")
            else:
                logger.info(f"Database schema is up to date (version {current_version})")

            await conn.commit()

    async def check_connection(self) -> bool:
        """Check if the database connection is working."""
        try:
            async with self._connect() as conn:
                await conn.execute("SELECT 1")
            return True
        except DatabaseError:
            return False

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def insert_listing(self, listing: Listing) -> None:
        """Insert or replace a listing."""
        await self.insert_listings([listing])

    async def insert_listings(self, listings: Iterable[Listing]) -> int:
        """Insert or replace several listings in one transaction.

        Returns:
            int: Number of listings written
        """
        rows = [self._to_row(listing) for listing in listings]
        if not rows:
            return 0
        async with self._connect() as conn:
            await conn.executemany(
                """
                INSERT OR REPLACE INTO gigs (
                    id, title, description, category, location, latitude, longitude,
                    budget, duration, skills_required, work_type, status, max_applicants,
                    deadline, employer_id, employer_name, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
            await conn.commit()
        logger.info(f"Stored {len(rows)} listings")
        return len(rows)

    async def insert_application(self, listing_id: str, applicant_id: str) -> int:
        """Record an application and return its id."""
        async with self._connect() as conn:
            cursor = await conn.execute(
                "INSERT INTO applications (gig_id, applicant_id) VALUES (?, ?)",
                (listing_id, applicant_id),
            )
            await conn.commit()
            return cursor.lastrowid

    # ------------------------------------------------------------------
    # Listing source
    # ------------------------------------------------------------------
    async def fetch_by_status(
        self, status: str, page_size: int, cursor: Optional[str] = None
    ) -> ListingPage:
        """Fetch one page of listings with ``status``, newest first.

        The returned cursor is None once a page comes back short.
        """
        params: List[Any] = [status]
        where = "status = ?"
        if cursor is not None:
            created_at, listing_id = decode_cursor(cursor)
            where += " AND (created_at < ? OR (created_at = ? AND id < ?))"
            params.extend([created_at, created_at, listing_id])
        params.append(page_size)

        async with self._connect() as conn:
            async with conn.execute(
                f"SELECT * FROM gigs WHERE {where} ORDER BY created_at DESC, id DESC LIMIT ?",
                params,
            ) as db_cursor:
                rows = await db_cursor.fetchall()

        listings = [self._from_row(row) for row in rows]
        next_cursor = None
        if len(rows) == page_size:
            last = rows[-1]
            next_cursor = encode_cursor(last["created_at"], last["id"])
        return ListingPage(listings=listings, cursor=next_cursor)

    async def search(
        self, term: str, category: Optional[str] = None, limit: int = 100
    ) -> List[Listing]:
        """Listings whose title, description or skills contain ``term``."""
        params: List[Any] = []
        sql = "SELECT * FROM gigs"
        if category:
            sql += " WHERE category = ?"
            params.append(category)
        sql += " ORDER BY created_at DESC, id DESC"

        async with self._connect() as conn:
            async with conn.execute(sql, params) as db_cursor:
                rows = await db_cursor.fetchall()

        matches = []
        for row in rows:
            listing = self._from_row(row)
            if matches_search_term(listing, term):
                matches.append(listing)
                if len(matches) >= limit:
                    break
        return matches

    async def count_applications(self, listing_id: str) -> int:
        async with self._connect() as conn:
            async with conn.execute(
                "SELECT COUNT(*) FROM applications WHERE gig_id = ?", (listing_id,)
            ) as cursor:
                row = await cursor.fetchone()
        return row[0]

    async def has_applied(self, listing_id: str, actor_id: str) -> bool:
        async with self._connect() as conn:
            async with conn.execute(
                "SELECT 1 FROM applications WHERE gig_id = ? AND applicant_id = ? LIMIT 1",
                (listing_id, actor_id),
            ) as cursor:
                row = await cursor.fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------
    @staticmethod
    def _to_row(listing: Listing) -> Tuple[Any, ...]:
        coords = listing.coordinates
        return (
            listing.id,
            listing.title,
            listing.description,
            listing.category,
            listing.location,
            coords.latitude if coords else None,
            coords.longitude if coords else None,
            listing.budget,
            listing.duration,
            json.dumps(listing.skills_required),
            listing.work_type.value if listing.work_type else None,
            listing.status.value,
            listing.max_applicants,
            _timestamp(listing.deadline),
            listing.employer_id,
            listing.employer_name,
            _timestamp(listing.created_at),
            _timestamp(listing.updated_at),
        )

    @staticmethod
    def _from_row(row: aiosqlite.Row) -> Listing:
        data: Dict[str, Any] = dict(row)
        latitude, longitude = data.pop("latitude"), data.pop("longitude")
        if latitude is not None and longitude is not None:
            data["coordinates"] = {"latitude": latitude, "longitude": longitude}
        data["skills_required"] = json.loads(data.get("skills_required") or "[]")
        return Listing.model_validate(data)
