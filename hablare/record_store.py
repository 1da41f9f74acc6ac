"""
Record store using SQLite.

Persists generated records of every category in one table. Queryable
fields (category, provider, requestor, word count, dimensions) are kept in
columns; the full record is stored as a JSON document alongside them.

File-backed records own a file under `{bundle_root}/assets/{request_id}/`.
Deleting or replacing a record removes its file in the same operation:
the file is first moved aside, the row change is committed, and only then
is the file unlinked. If the commit fails the file is moved back.

All writes should go through one owning thread; the store does not
serialize writers itself.
"""

import logging
import os
import sqlite3
from pathlib import Path
from typing import Optional, Union

from .codecs import decode_dict, encode_dict
from .errors import FileOperationError
from .formats import ProviderCategory, SerializationFormat
from .records import GeneratedRecord, record_from_dict

logger = logging.getLogger(__name__)

# Suffix for files moved aside while their row change commits
_TRASH_SUFFIX = ".deleting"


class RecordStore:
    """
    SQLite-backed store for generated records.

    Args:
        db_path: Path to SQLite database file
        bundle_root: Default root that file references resolve against
    """

    def __init__(self, db_path: Path, bundle_root: Optional[Path] = None):
        self._db_path = Path(db_path)
        self.bundle_root = Path(bundle_root) if bundle_root is not None else None
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS records (
                id TEXT PRIMARY KEY,
                category TEXT NOT NULL,
                provider_id TEXT NOT NULL,
                requestor_id TEXT NOT NULL,
                word_count INTEGER,
                dimensions INTEGER,
                file_path TEXT,
                record_json TEXT NOT NULL,
                generated_at TEXT NOT NULL,
                modified_at TEXT NOT NULL
            )
        """)

        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_records_category
            ON records(category)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_records_provider
            ON records(provider_id)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_records_requestor
            ON records(requestor_id)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_records_generated
            ON records(generated_at)
        """)

        self._conn.commit()

    # -------------------------------------------------------------------------
    # Row conversion
    # -------------------------------------------------------------------------

    @staticmethod
    def _columns(record: GeneratedRecord) -> tuple:
        document = encode_dict(record.to_dict(), SerializationFormat.JSON).decode("utf-8")
        ref = record.file_reference
        return (
            record.id,
            record.category.value,
            record.provider_id,
            record.requestor_id,
            getattr(record, "word_count", None),
            getattr(record, "dimensions", None),
            ref.relative_path if ref else None,
            document,
            record.generated_at.isoformat(),
            record.modified_at.isoformat(),
        )

    @staticmethod
    def _from_row(row: sqlite3.Row) -> GeneratedRecord:
        d = decode_dict(row["record_json"].encode("utf-8"), SerializationFormat.JSON)
        return record_from_dict(d)

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def insert(self, record: GeneratedRecord) -> None:
        """
        Insert a new record.

        Raises:
            ValueError: If a record with the same id exists
        """
        try:
            with self._conn:
                self._insert(record)
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Record already exists: {record.id}") from e
        logger.debug("Inserted %s record %s", record.category.value, record.id)

    def _insert(self, record: GeneratedRecord) -> None:
        self._conn.execute("""
            INSERT INTO records
            (id, category, provider_id, requestor_id, word_count, dimensions,
             file_path, record_json, generated_at, modified_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, self._columns(record))

    def update(self, record: GeneratedRecord) -> bool:
        """
        Overwrite the stored copy of a record.

        Returns:
            True if the record was found and updated, False otherwise
        """
        columns = self._columns(record)
        with self._conn:
            cursor = self._conn.execute("""
                UPDATE records
                SET category = ?, provider_id = ?, requestor_id = ?, word_count = ?,
                    dimensions = ?, file_path = ?, record_json = ?,
                    generated_at = ?, modified_at = ?
                WHERE id = ?
            """, columns[1:] + (columns[0],))
        return cursor.rowcount > 0

    def touch(self, id: str) -> bool:
        """
        Mark a record as recently accessed.

        Returns:
            True if the record exists, False otherwise
        """
        record = self.get(id)
        if record is None:
            return False
        record.touch()
        return self.update(record)

    def delete(self, id: str, bundle_root: Optional[Path] = None) -> bool:
        """
        Delete a record and, if file-backed, its file.

        Args:
            id: Record identifier
            bundle_root: Root to resolve the file against (defaults to the
                store's bundle_root)

        Returns:
            True if the record existed, False otherwise

        Raises:
            FileOperationError: file-backed and no bundle root is known
        """
        record = self.get(id)
        if record is None:
            return False

        stashed = self._stash_file(record, bundle_root)
        try:
            with self._conn:
                self._conn.execute("DELETE FROM records WHERE id = ?", (id,))
        except BaseException:
            self._restore_file(stashed)
            raise
        self._discard_file(stashed)
        logger.info("Deleted record %s", id)
        return True

    def replace(
        self,
        old_id: str,
        new_record: GeneratedRecord,
        bundle_root: Optional[Path] = None,
    ) -> None:
        """
        Supersede a record with a regenerated one.

        The old row and its file are removed and the new row inserted as one
        unit: on any failure the old row and file are left in place.

        Raises:
            KeyError: If old_id does not exist
            ValueError: If new_record's id is already taken
        """
        old = self.get(old_id)
        if old is None:
            raise KeyError(f"Record not found: {old_id}")

        # A regenerate into the same path has already overwritten the old file
        same_file = (
            old.file_reference is not None
            and new_record.file_reference is not None
            and old.file_reference.relative_path == new_record.file_reference.relative_path
        )
        stashed = None if same_file else self._stash_file(old, bundle_root)
        try:
            with self._conn:
                self._conn.execute("DELETE FROM records WHERE id = ?", (old_id,))
                self._insert(new_record)
        except sqlite3.IntegrityError as e:
            self._restore_file(stashed)
            raise ValueError(f"Record already exists: {new_record.id}") from e
        except BaseException:
            self._restore_file(stashed)
            raise
        self._discard_file(stashed)
        logger.info("Replaced record %s with %s", old_id, new_record.id)

    # -------------------------------------------------------------------------
    # File handling
    # -------------------------------------------------------------------------

    def _resolve_root(self, bundle_root: Optional[Path]) -> Optional[Path]:
        root = bundle_root if bundle_root is not None else self.bundle_root
        return Path(root) if root is not None else None

    def _stash_file(
        self, record: GeneratedRecord, bundle_root: Optional[Path]
    ) -> Optional[tuple[Path, Path]]:
        """Move a record's file aside; returns (original, stashed) paths."""
        ref = record.file_reference
        if ref is None:
            return None
        root = self._resolve_root(bundle_root)
        if root is None:
            raise FileOperationError(
                "delete", "File reference exists but no storage area provided"
            )
        path = ref.file_path(root)
        if not path.exists():
            logger.warning("File for record %s already missing: %s", record.id, path)
            return None
        stashed = path.with_name(f".{path.name}{_TRASH_SUFFIX}")
        try:
            os.replace(path, stashed)
        except OSError as e:
            raise FileOperationError("delete", str(e), path=path) from e
        return path, stashed

    @staticmethod
    def _restore_file(stashed: Optional[tuple[Path, Path]]) -> None:
        if stashed is not None:
            original, moved = stashed
            os.replace(moved, original)

    @staticmethod
    def _discard_file(stashed: Optional[tuple[Path, Path]]) -> None:
        if stashed is None:
            return
        original, moved = stashed
        moved.unlink(missing_ok=True)
        directory = original.parent
        # Storage areas belong to one request; drop the directory once empty
        if directory.is_dir() and not any(directory.iterdir()):
            directory.rmdir()

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, id: str) -> Optional[GeneratedRecord]:
        row = self._conn.execute(
            "SELECT record_json FROM records WHERE id = ?", (id,)
        ).fetchone()
        if row is None:
            return None
        return self._from_row(row)

    def exists(self, id: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM records WHERE id = ?", (id,)
        ).fetchone()
        return row is not None

    def query(
        self,
        *,
        category: Optional[Union[ProviderCategory, str]] = None,
        provider_id: Optional[str] = None,
        requestor_id: Optional[str] = None,
        dimensions: Optional[int] = None,
        min_word_count: Optional[int] = None,
        max_word_count: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[GeneratedRecord]:
        """
        Find records matching every given predicate, newest first.
        """
        clauses = []
        params: list = []
        if category is not None:
            clauses.append("category = ?")
            params.append(ProviderCategory(category).value)
        if provider_id is not None:
            clauses.append("provider_id = ?")
            params.append(provider_id)
        if requestor_id is not None:
            clauses.append("requestor_id = ?")
            params.append(requestor_id)
        if dimensions is not None:
            clauses.append("dimensions = ?")
            params.append(dimensions)
        if min_word_count is not None:
            clauses.append("word_count >= ?")
            params.append(min_word_count)
        if max_word_count is not None:
            clauses.append("word_count <= ?")
            params.append(max_word_count)

        sql = "SELECT record_json FROM records"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY generated_at DESC, id"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        rows = self._conn.execute(sql, params).fetchall()
        return [self._from_row(row) for row in rows]

    def count(self, category: Optional[Union[ProviderCategory, str]] = None) -> int:
        if category is None:
            row = self._conn.execute("SELECT COUNT(*) FROM records").fetchone()
        else:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM records WHERE category = ?",
                (ProviderCategory(category).value,),
            ).fetchone()
        return row[0]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
