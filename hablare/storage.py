"""
Per-request storage areas and references to the files written into them.

Every generation request owns one directory, addressed as
`assets/{request_id}/` below either a bundle root (durable) or a
process-wide scratch root (temporary). Because the directory is unique to
the request, concurrent requests never share a destination and need no
locking.

Layout:

    {bundle}/
    └── assets/
        ├── {request_id}/
        │   └── data.mp3
        └── {request_id}/
            └── data.bin

A TypedDataFileReference records exactly one written file. Its
`relative_path` depends only on (request_id, file_name), so the same
reference resolves against a StorageAreaReference or directly against the
bundle root.
"""

import hashlib
import logging
import os
import shutil
import tempfile
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from .errors import (
    ChecksumMismatchError,
    FileOperationError,
    FileSizeMismatchError,
)

logger = logging.getLogger(__name__)

ASSETS_DIRNAME = "assets"
DEFAULT_DATA_BASENAME = "data"

_SCRATCH_ROOT: Optional[Path] = None


def new_request_id() -> str:
    """Generate a fresh request identifier."""
    return str(uuid.uuid4())


def scratch_root() -> Path:
    """Process-wide scratch directory for temporary storage areas."""
    global _SCRATCH_ROOT
    if _SCRATCH_ROOT is None:
        _SCRATCH_ROOT = Path(tempfile.gettempdir()) / f"hablare-{os.getpid()}"
    return _SCRATCH_ROOT


def _validate_component(value: str, kind: str) -> None:
    """Reject names that would escape their directory."""
    if not value or value in (".", "..") or "/" in value or "\\" in value or "\x00" in value:
        raise ValueError(f"Invalid {kind}: {value!r}")


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def write_atomic(path: Path, data: bytes) -> None:
    """
    Write bytes so the destination is either absent or complete.

    Data goes to a temp file in the same directory and is renamed into
    place. If anything interrupts the write (including KeyboardInterrupt),
    the temp file is removed and the exception propagates.
    """
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


# -----------------------------------------------------------------------------
# Storage Area
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class StorageAreaReference:
    """
    The directory owned by one generation request.

    Attributes:
        request_id: Identifier of the owning request (immutable)
        base_path: Directory that receives the request's files
        bundle_identifier: Identifier of the owning bundle, if any
            (informational, not part of equality)
    """
    request_id: str
    base_path: Path
    bundle_identifier: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        _validate_component(self.request_id, "request id")
        if not isinstance(self.base_path, Path):
            object.__setattr__(self, "base_path", Path(self.base_path))

    # Constructors

    @classmethod
    def temporary(cls, request_id: Optional[str] = None) -> "StorageAreaReference":
        """Scratch area under the process-wide temporary root."""
        request_id = request_id or new_request_id()
        return cls(request_id, scratch_root() / ASSETS_DIRNAME / request_id)

    @classmethod
    def in_bundle(
        cls,
        request_id: str,
        bundle_path: Union[str, Path],
        bundle_identifier: Optional[str] = None,
    ) -> "StorageAreaReference":
        """Durable area at `{bundle_path}/assets/{request_id}`."""
        return cls(
            request_id,
            Path(bundle_path) / ASSETS_DIRNAME / request_id,
            bundle_identifier,
        )

    # Paths

    def file_path(self, file_name: str) -> Path:
        _validate_component(file_name, "file name")
        return self.base_path / file_name

    def file_path_for(self, base_name: str, extension: str) -> Path:
        return self.file_path(f"{base_name}.{extension}")

    def default_data_file_path(self, extension: str) -> Path:
        return self.file_path_for(DEFAULT_DATA_BASENAME, extension)

    # Directory operations

    def create_directory(self) -> None:
        """Create the area's directory; a no-op if it already exists."""
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileOperationError("create directory", str(e), path=self.base_path) from e

    def directory_exists(self) -> bool:
        return self.base_path.is_dir()

    def list_files(self) -> list[Path]:
        """
        List regular files in the area, sorted by name.

        Skips hidden files (including in-flight temp files) and
        subdirectories. Returns an empty list if the directory is missing.
        """
        if not self.directory_exists():
            return []
        files = []
        for entry in sorted(self.base_path.iterdir()):
            if entry.name.startswith("."):
                continue
            if not entry.is_file():
                continue
            files.append(entry)
        return files

    # Writing

    def write(
        self,
        file_name: str,
        data: bytes,
        mime_type: str,
        *,
        include_checksum: bool = False,
    ) -> "TypedDataFileReference":
        """
        Write one file atomically and return the reference describing it.

        The reference's size is the length of exactly the bytes written.
        """
        path = self.file_path(file_name)
        self.create_directory()
        try:
            write_atomic(path, data)
        except OSError as e:
            raise FileOperationError("write", str(e), path=path) from e
        logger.debug("Wrote %d bytes to %s", len(data), path)
        return TypedDataFileReference.from_bytes(
            self.request_id, file_name, data, mime_type,
            include_checksum=include_checksum,
        )

    def __str__(self) -> str:
        if self.bundle_identifier:
            return f"StorageAreaReference(request_id={self.request_id}, bundle={self.bundle_identifier})"
        return f"StorageAreaReference(request_id={self.request_id}, path={self.base_path})"


# A file reference resolves against a storage area or a bundle root
ResolveTarget = Union[StorageAreaReference, Path, str]


# -----------------------------------------------------------------------------
# File Reference
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class TypedDataFileReference:
    """
    Durable pointer to one file in a request's storage area.

    Created exactly when the file is written and never updated in place.

    Attributes:
        request_id: Request that owns the file
        file_name: Name inside `assets/{request_id}/`
        file_size: Byte length at write time
        mime_type: MIME type of the content
        created_at: When the file was written (UTC)
        checksum: Hex SHA-256 of the content, if computed
    """
    request_id: str
    file_name: str
    file_size: int
    mime_type: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    checksum: Optional[str] = None

    def __post_init__(self):
        _validate_component(self.request_id, "request id")
        _validate_component(self.file_name, "file name")

    @property
    def file_extension(self) -> str:
        return Path(self.file_name).suffix.lstrip(".")

    @property
    def relative_path(self) -> str:
        """Bundle-relative location, independent of how it is resolved."""
        return f"{ASSETS_DIRNAME}/{self.request_id}/{self.file_name}"

    def file_path(self, target: ResolveTarget) -> Path:
        """
        Resolve against a storage area or a bundle root directory.

        Raises:
            FileOperationError: `target` is the storage area of another request
        """
        if isinstance(target, StorageAreaReference):
            if target.request_id != self.request_id:
                raise FileOperationError(
                    "resolve",
                    f"reference belongs to request {self.request_id}, not {target.request_id}",
                    path=target.base_path,
                )
            return target.file_path(self.file_name)
        return Path(target) / ASSETS_DIRNAME / self.request_id / self.file_name

    # File operations

    def read_data(self, target: ResolveTarget) -> bytes:
        path = self.file_path(target)
        try:
            return path.read_bytes()
        except OSError as e:
            raise FileOperationError("read", str(e), path=path) from e

    def file_exists(self, target: ResolveTarget) -> bool:
        """Probe for the file; never raises."""
        try:
            return self.file_path(target).is_file()
        except (OSError, ValueError, FileOperationError):
            return False

    def actual_size(self, target: ResolveTarget) -> int:
        path = self.file_path(target)
        try:
            return path.stat().st_size
        except OSError as e:
            raise FileOperationError("stat", str(e), path=path) from e

    def verify_size_matches(self, target: ResolveTarget) -> bool:
        """Detect truncation by comparing sizes, without reading the file."""
        return self.actual_size(target) == self.file_size

    def generate_checksum(self, target: ResolveTarget) -> str:
        return sha256_hex(self.read_data(target))

    def verify_checksum(self, target: ResolveTarget) -> bool:
        """Compare content against the stored checksum; True if none stored."""
        if self.checksum is None:
            return True
        return self.generate_checksum(target) == self.checksum

    def verify(self, target: ResolveTarget) -> None:
        """
        Full integrity check.

        Raises:
            FileOperationError: file missing or unreadable
            FileSizeMismatchError: size differs from the reference
            ChecksumMismatchError: content differs from the stored checksum
        """
        actual = self.actual_size(target)
        if actual != self.file_size:
            raise FileSizeMismatchError(self.file_size, actual)
        if self.checksum is not None:
            digest = self.generate_checksum(target)
            if digest != self.checksum:
                raise ChecksumMismatchError(self.checksum, digest)

    # Constructors

    @classmethod
    def from_bytes(
        cls,
        request_id: str,
        file_name: str,
        data: bytes,
        mime_type: str,
        *,
        include_checksum: bool = False,
    ) -> "TypedDataFileReference":
        return cls(
            request_id=request_id,
            file_name=file_name,
            file_size=len(data),
            mime_type=mime_type,
            checksum=sha256_hex(data) if include_checksum else None,
        )

    @classmethod
    def from_file(
        cls,
        request_id: str,
        path: Union[str, Path],
        mime_type: str,
        *,
        include_checksum: bool = False,
    ) -> "TypedDataFileReference":
        """Describe an existing file; reads content only for the checksum."""
        path = Path(path)
        try:
            size = path.stat().st_size
            checksum = sha256_hex(path.read_bytes()) if include_checksum else None
        except OSError as e:
            raise FileOperationError("read file size", str(e), path=path) from e
        return cls(
            request_id=request_id,
            file_name=path.name,
            file_size=size,
            mime_type=mime_type,
            checksum=checksum,
        )

    # Persistence

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "created_at": self.created_at.isoformat(),
            "checksum": self.checksum,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "TypedDataFileReference":
        return cls(
            request_id=d["request_id"],
            file_name=d["file_name"],
            file_size=int(d["file_size"]),
            mime_type=d["mime_type"],
            created_at=datetime.fromisoformat(d["created_at"]),
            checksum=d.get("checksum"),
        )

    def __str__(self) -> str:
        return (f"TypedDataFileReference(request_id={self.request_id}, "
                f"file_name={self.file_name}, size={self.file_size} bytes)")


# -----------------------------------------------------------------------------
# Bundle Storage
# -----------------------------------------------------------------------------

class BundleStorage:
    """
    Manages the storage areas under one bundle root.

    The bundle owns the `assets/` tree; individual requests own their
    `assets/{request_id}/` directories.
    """

    def __init__(self, root: Union[str, Path], bundle_identifier: Optional[str] = None):
        self.root = Path(root)
        self.bundle_identifier = bundle_identifier

    @property
    def assets_path(self) -> Path:
        return self.root / ASSETS_DIRNAME

    def create_storage_area(self, request_id: Optional[str] = None) -> StorageAreaReference:
        """Create (or reopen) the area for a request."""
        area = StorageAreaReference.in_bundle(
            request_id or new_request_id(), self.root, self.bundle_identifier
        )
        area.create_directory()
        return area

    def get_storage_area(self, request_id: str) -> Optional[StorageAreaReference]:
        area = StorageAreaReference.in_bundle(request_id, self.root, self.bundle_identifier)
        return area if area.directory_exists() else None

    def remove_storage_area(self, request_id: str) -> bool:
        """Delete a request's directory and everything in it."""
        area = StorageAreaReference.in_bundle(request_id, self.root, self.bundle_identifier)
        if not area.directory_exists():
            return False
        try:
            shutil.rmtree(area.base_path)
        except OSError as e:
            raise FileOperationError("remove storage area", str(e), path=area.base_path) from e
        logger.info("Removed storage area %s", request_id)
        return True

    def list_storage_areas(self) -> list[str]:
        """Request ids with a directory under assets/, sorted."""
        if not self.assets_path.is_dir():
            return []
        return sorted(
            entry.name for entry in self.assets_path.iterdir()
            if entry.is_dir() and not entry.name.startswith(".")
        )

    def cleanup_storage_areas(
        self,
        older_than: Optional[datetime] = None,
        keep: Iterable[str] = (),
    ) -> int:
        """
        Remove storage areas last modified before `older_than`.

        With no cutoff, removes empty areas only. Areas named in `keep` are
        never removed. Returns the number removed.
        """
        keep = set(keep)
        removed = 0
        for request_id in self.list_storage_areas():
            if request_id in keep:
                continue
            path = self.assets_path / request_id
            if older_than is None:
                if any(path.iterdir()):
                    continue
            else:
                mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
                if mtime >= older_than:
                    continue
            if self.remove_storage_area(request_id):
                removed += 1
        return removed
