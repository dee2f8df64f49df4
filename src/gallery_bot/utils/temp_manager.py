"""
Temp Space Manager - Utils

Per-job scratch directories, ageing of stale scratch space and expired
downloads, and relocation of finished archives into the public directory.

Scratch and public roots may live on different filesystems, so relocation
is copy -> verify -> delete source, never a rename.
"""

import asyncio
import logging
import os
import re
import shutil
import time
import uuid
from typing import Optional, Set
from urllib.parse import quote

from .. import config
from ..shared.errors import FilesystemError

logger = logging.getLogger(__name__)


class TempSpaceManager:
    """Manage scratch space and the public download directory."""

    def __init__(self, temp_root: str = None, public_root: str = None,
                 base_url: str = None, temp_retention: int = None,
                 link_expiry: int = None):
        """
        Initialize temp space manager.

        Args:
            temp_root: Parent of all scratch directories
            public_root: Externally served output directory
            base_url: URL prefix the public directory is served under
            temp_retention: Age in seconds after which scratch entries are stale
            link_expiry: Age in seconds after which published files are removed
        """
        self.temp_root = os.path.abspath(temp_root or config.TEMP_DIR)
        self.public_root = os.path.abspath(public_root or config.DOWNLOADS_DIR)
        self.base_url = (base_url or config.DOWNLOAD_BASE_URL).rstrip('/')
        self.temp_retention = temp_retention or config.TEMP_RETENTION_MINUTES * 60
        self.link_expiry = link_expiry or config.LINK_EXPIRY_HOURS * 3600
        self._active: Set[str] = set()

    # === Scratch directories ===

    async def create_temp_dir(self, label: str = 'job') -> str:
        """
        Allocate a fresh scratch directory.

        Args:
            label: Human readable prefix for the directory name

        Returns:
            Absolute path of the new directory

        Raises:
            FilesystemError: If the directory cannot be created
        """
        safe_label = re.sub(r'[^A-Za-z0-9_-]+', '_', label or 'job').strip('_') or 'job'
        name = f"{safe_label}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
        path = os.path.join(self.temp_root, name)

        try:
            os.makedirs(self.temp_root, exist_ok=True)
            os.mkdir(path)
        except OSError as e:
            raise FilesystemError(f"Cannot create scratch directory: {e}") from e

        self._active.add(path)
        logger.debug(f"Created temp dir: {path}")
        return path

    async def delete_dir(self, path: Optional[str]) -> bool:
        """Remove a directory tree. Never raises."""
        if not path:
            return False
        self._active.discard(os.path.abspath(path))

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, shutil.rmtree, path)
            logger.debug(f"Deleted directory: {path}")
            return True
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.warning(f"Failed to delete directory {path}: {e}")
            return False

    async def delete_file(self, path: Optional[str]) -> bool:
        """Remove a single file. Never raises."""
        if not path:
            return False
        try:
            os.remove(path)
            logger.debug(f"Deleted file: {path}")
            return True
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.warning(f"Failed to delete file {path}: {e}")
            return False

    async def cleanup_old_temp_dirs(self) -> int:
        """
        Remove scratch entries older than the retention window.

        Directories of jobs still running in this process are skipped.

        Returns:
            Number of entries removed
        """
        return await self._remove_older_than(self.temp_root, self.temp_retention, skip=self._active)

    async def cleanup_expired_downloads(self) -> int:
        """
        Remove published files older than the link lifetime.

        Returns:
            Number of files removed
        """
        return await self._remove_older_than(self.public_root, self.link_expiry)

    async def _remove_older_than(self, root: str, max_age: int, skip: Set[str] = frozenset()) -> int:
        if not os.path.isdir(root):
            return 0

        cutoff = time.time() - max_age
        removed = 0

        try:
            names = os.listdir(root)
        except OSError as e:
            logger.warning(f"Cannot scan {root}: {e}")
            return 0

        for name in names:
            path = os.path.join(root, name)
            if path in skip:
                continue
            try:
                if os.path.getmtime(path) >= cutoff:
                    continue
            except OSError:
                continue

            if os.path.isdir(path) and not os.path.islink(path):
                deleted = await self.delete_dir(path)
            else:
                deleted = await self.delete_file(path)
            if deleted:
                removed += 1

        if removed:
            logger.info(f"Removed {removed} expired entries from {root}")
        return removed

    # === Publishing ===

    async def move_to_public_location(self, path: str) -> str:
        """
        Relocate a finished archive into the public directory.

        Copies to "<name>.part", verifies the size, renames inside the
        public directory, and only then deletes the source. Calling it again
        after a partial failure is safe.

        Returns:
            Path of the published file

        Raises:
            FilesystemError: If the copy cannot be made or verified
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._move_to_public, path)

    def _move_to_public(self, path: str) -> str:
        name = os.path.basename(path)
        dest = os.path.join(self.public_root, name)

        try:
            os.makedirs(self.public_root, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Cannot create public directory: {e}") from e

        if not os.path.isfile(path):
            if os.path.isfile(dest):
                # A previous attempt copied and removed the source already
                logger.info(f"Already published: {name}")
                return dest
            raise FilesystemError(f"Archive not found: {path}")

        source_size = os.path.getsize(path)

        if not (os.path.isfile(dest) and os.path.getsize(dest) == source_size):
            part = dest + '.part'
            try:
                shutil.copyfile(path, part)
                with open(part, 'rb') as f:
                    os.fsync(f.fileno())
                if os.path.getsize(part) != source_size:
                    raise FilesystemError(f"Size mismatch copying {name}")
                os.replace(part, dest)
            except (OSError, FilesystemError) as e:
                if os.path.exists(part):
                    try:
                        os.remove(part)
                    except OSError:
                        logger.warning(f"Could not remove partial copy {part}")
                if isinstance(e, FilesystemError):
                    raise
                raise FilesystemError(f"Failed to publish {name}: {e}") from e

        if os.path.getsize(dest) != source_size:
            raise FilesystemError(f"Published copy of {name} failed verification")

        try:
            os.remove(path)
        except OSError as e:
            # Copy is in place; the scratch sweep will take the source
            logger.warning(f"Published {name} but could not remove source: {e}")

        logger.info(f"File moved to downloads: {name}")
        return dest

    def public_url(self, path: str) -> str:
        """Download link for a published file."""
        return f"{self.base_url}/{quote(os.path.basename(path))}"
