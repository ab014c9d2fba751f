import asyncio
import os
import platform
import shutil
import socket
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

import aiofiles.os

from uplite.logger_config import get_logger
from uplite.models.stored_file import FileInfo, StoredFile

logger = get_logger("storage")


def format_size(size: int) -> str:
    return f"{size / (1024 * 1024):.2f} MB"


def format_mtime(mtime: float) -> str:
    return datetime.fromtimestamp(mtime).strftime("%m/%d/%Y, %I:%M:%S %p")


class StorageManager:
    def __init__(self, upload_dir: Path):
        self.upload_dir = Path(upload_dir)

    async def initialize(self):
        """Make sure the shared directory is there before serving requests."""
        await aiofiles.os.makedirs(self.upload_dir, exist_ok=True)
        logger.debug(f"Upload directory created/verified: {self.upload_dir}")

    def resolve(self, filename: str) -> Optional[Path]:
        """Map a client supplied name to a path directly under the upload directory.

        Only the base name is kept, so ``../../etc/passwd`` becomes ``passwd``.
        Names that would point at the directory itself or its parent yield None.
        """
        name = os.path.basename(filename.replace("\\", "/"))
        if name in ("", ".", ".."):
            return None
        return self.upload_dir / name

    async def exists(self, filename: str) -> bool:
        path = self.resolve(filename)
        return path is not None and await aiofiles.os.path.exists(path)

    async def list_files(self) -> List[StoredFile]:
        """List entries directly in the upload directory, most recently modified first.

        Entries removed between the directory scan and the stat call are
        skipped. Entries with identical mtimes keep their scan order.
        """
        names = await aiofiles.os.listdir(self.upload_dir)
        entries = []
        for name in names:
            try:
                stat = await aiofiles.os.stat(self.upload_dir / name)
            except FileNotFoundError:
                logger.debug(f"{name} vanished before it could be listed")
                continue
            entries.append(StoredFile(name=name, size=stat.st_size, mtime=stat.st_mtime))

        return sorted(entries, key=lambda entry: entry.mtime, reverse=True)

    async def file_info(self, filename: str, client_address: str) -> Optional[FileInfo]:
        path = self.resolve(filename)
        if path is None or not await aiofiles.os.path.exists(path):
            return None

        try:
            stat = await aiofiles.os.stat(path)
        except FileNotFoundError:
            # Deleted after the existence check
            return None
        return FileInfo(
            name=path.name,
            size=format_size(stat.st_size),
            modified=format_mtime(stat.st_mtime),
            absolute_path=str(path),
            os=platform.system(),
            arch=platform.machine(),
            host=socket.gethostname(),
            user_ip=client_address,
        )

    async def delete_file(self, filename: str) -> bool:
        """Delete an entry from the upload directory.

        Returns False when there was nothing to delete, including when a
        concurrent request removed it first.
        """
        path = self.resolve(filename)
        if path is None:
            return False

        try:
            if await aiofiles.os.path.isdir(path) and not await aiofiles.os.path.islink(path):
                await asyncio.to_thread(shutil.rmtree, path)
            else:
                await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False

        logger.info(f"Deleted file: {path.name}")
        return True

    def resolve_tree_path(self, relative: str) -> Optional[Path]:
        """Resolve a path below the upload directory for the browsable index.

        Anything that escapes the upload directory, including through
        symlinks, resolves to None.
        """
        root = self.upload_dir.resolve()
        candidate = (root / relative.lstrip("/")).resolve()
        if candidate != root and root not in candidate.parents:
            return None
        return candidate

    async def list_directory(self, directory: Path) -> List[Tuple[str, bool]]:
        """Return ``(name, is_dir)`` pairs, directories first, each group alphabetical."""
        names = await aiofiles.os.listdir(directory)
        entries = []
        for name in names:
            try:
                is_dir = await aiofiles.os.path.isdir(directory / name)
            except OSError:
                continue
            entries.append((name, is_dir))
        return sorted(entries, key=lambda entry: (not entry[1], entry[0].lower()))
