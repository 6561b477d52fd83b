"""Local file access: tagged write operations, the installed-manifest store
and the launcher instance reader.

Writes are described by a tagged variant dispatched on ``kind``:
- WriteSingleFile:  one file, full content
- WriteFileSet:     several files relative to one directory

Every file is written to a temporary sibling and atomically renamed into
place. Blocking I/O runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from packsync.core.config import get_settings
from packsync.core.exceptions import MalformedManifestError, PackSyncError
from packsync.core.logging import get_logger
from packsync.schemas.manifest import ADDON_CATEGORIES, Manifest


logger = get_logger(__name__)

DISABLED_SUFFIX = ".disabled"


# =============================================================================
# Write operations
# =============================================================================

class WriteSingleFile(BaseModel):
    """Write one file."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["single_file"] = "single_file"
    path: str
    content: str


class WriteFileSet(BaseModel):
    """Write several files below ``directory``.

    Attributes:
        directory: Base directory
        files: Relative path -> content
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["file_set"] = "file_set"
    directory: str
    files: dict[str, str] = Field(default_factory=dict)


WriteOp = Annotated[WriteSingleFile | WriteFileSet, Field(discriminator="kind")]

write_op_adapter: TypeAdapter[WriteSingleFile | WriteFileSet] = TypeAdapter(WriteOp)


def _write_atomic(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(path.name + ".tmp")
    with temp_path.open("w", encoding="utf-8", newline="") as handle:
        handle.write(content)
        handle.flush()
    os.replace(temp_path, path)


def _resolve_inside(directory: Path, relative_path: str) -> Path:
    """Resolve ``relative_path`` below ``directory``, refusing escapes."""
    base = directory.resolve()
    target = (base / relative_path).resolve()
    if not target.is_relative_to(base):
        raise PackSyncError(
            f"Refusing to write outside {base}: '{relative_path}'",
            code="FILE_WRITE_ERROR",
        )
    return target


def _scan_disabled(directory: Path) -> frozenset[str]:
    try:
        return frozenset(entry.stem for entry in directory.iterdir() if entry.suffix == DISABLED_SUFFIX)
    except (FileNotFoundError, NotADirectoryError):
        return frozenset()


class LocalFileSystem:
    """Reads text files and applies write operations."""

    async def read_text(self, path: str | Path, *, missing_ok: bool = False) -> str | None:
        """Read a UTF-8 text file.

        Args:
            path: File to read
            missing_ok: Return None instead of raising when the file is absent

        Raises:
            PackSyncError: FILE_NOT_FOUND or FILE_READ_ERROR
        """
        try:
            return await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
        except FileNotFoundError as e:
            if missing_ok:
                return None
            raise PackSyncError(f"File not found: {path}", code="FILE_NOT_FOUND", cause=e) from e
        except (OSError, UnicodeDecodeError) as e:
            raise PackSyncError(f"Cannot read {path}: {e}", code="FILE_READ_ERROR", cause=e) from e

    async def disabled_files(self, directory: str | Path) -> frozenset[str]:
        """Names of files switched off with a ``.disabled`` suffix.

        ``jei.jar.disabled`` yields ``jei.jar``. A missing directory yields
        an empty set.
        """
        return await asyncio.to_thread(_scan_disabled, Path(directory))

    async def write(self, op: WriteSingleFile | WriteFileSet) -> int:
        """Apply a write operation.

        Returns:
            Number of files written

        Raises:
            PackSyncError: FILE_WRITE_ERROR
        """
        try:
            if isinstance(op, WriteSingleFile):
                written = await asyncio.to_thread(self._write_single, op)
            else:
                written = await asyncio.to_thread(self._write_set, op)
        except OSError as e:
            raise PackSyncError(f"Write failed: {e}", code="FILE_WRITE_ERROR", cause=e) from e
        logger.debug("Files written", kind=op.kind, files=written)
        return written

    @staticmethod
    def _write_single(op: WriteSingleFile) -> int:
        _write_atomic(Path(op.path), op.content)
        return 1

    @staticmethod
    def _write_set(op: WriteFileSet) -> int:
        directory = Path(op.directory)
        targets = [(_resolve_inside(directory, rel), content) for rel, content in op.files.items()]
        for target, content in targets:
            _write_atomic(target, content)
        return len(targets)


# =============================================================================
# Installed manifest
# =============================================================================

class LocalManifestStore:
    """ManifestStore keeping the installed manifest inside the modpack directory.

    Example:
        >>> store = LocalManifestStore()
        >>> previous = await store.read_previous_manifest("/games/pack")
        >>> previous is None  # fresh install
        True
    """

    def __init__(
        self,
        filesystem: LocalFileSystem | None = None,
        filename: str | None = None,
    ) -> None:
        self._fs = filesystem or LocalFileSystem()
        self._filename = filename or get_settings().manifest_filename

    def manifest_path(self, target_path: str) -> Path:
        return Path(target_path) / self._filename

    async def read_previous_manifest(self, target_path: str) -> Manifest | None:
        """Return the installed manifest, or None when none was recorded.

        Raises:
            MalformedManifestError: If the recorded manifest cannot be read
                or parsed
        """
        path = self.manifest_path(target_path)
        try:
            text = await self._fs.read_text(path, missing_ok=True)
        except PackSyncError as e:
            raise MalformedManifestError(f"Cannot read installed manifest {path}: {e}", cause=e) from e
        if text is None:
            logger.debug("No installed manifest", path=str(path))
            return None
        return Manifest.from_json(text)

    async def write_previous_manifest(self, target_path: str, manifest: Manifest) -> None:
        path = self.manifest_path(target_path)
        await self._fs.write(WriteSingleFile(path=str(path), content=manifest.to_json()))
        logger.info("Installed manifest recorded", path=str(path))



# =============================================================================
# Launcher instance
# =============================================================================

async def read_minecraft_instance(
    instance_path: str | Path,
    filesystem: LocalFileSystem | None = None,
) -> Manifest:
    """Build a publishable manifest from a launcher ``minecraftinstance.json``.

    Addons whose file sits in its category folder (next to the instance
    document) with a ``.disabled`` suffix are marked disabled.

    Raises:
        PackSyncError: FILE_NOT_FOUND or FILE_READ_ERROR
        MalformedManifestError: If the document cannot be parsed
    """
    fs = filesystem or LocalFileSystem()
    path = Path(instance_path)
    text = await fs.read_text(path) or ""
    disabled = {category: await fs.disabled_files(path.parent / category) for category in ADDON_CATEGORIES}
    manifest = Manifest.from_minecraft_instance(text, disabled)
    logger.info(
        "Instance manifest built",
        path=str(path),
        addons=sum(1 for _ in manifest.all_addons()),
        disabled=sum(1 for addon in manifest.all_addons() if addon.disabled),
    )
    return manifest
