"""
Archive Builder - Archive Module

Compress a populated directory with the 7z command line tool, as one file
or as a set of size-bounded volumes ("name.7z.001", "name.7z.002", ...).
Concatenating the volumes in order gives back the single-file archive.
"""

import asyncio
import glob
import logging
import os
from typing import List, Optional

from .. import config
from ..shared.errors import ArchiveError

logger = logging.getLogger(__name__)


def format_bytes(size: float) -> str:
    """Human readable size: 1536 -> '1.50 KB'."""
    size = float(max(0.0, size or 0))
    units = ['B', 'KB', 'MB', 'GB', 'TB']
    idx = 0
    while size >= 1024 and idx < len(units) - 1:
        size /= 1024.0
        idx += 1
    return f"{size:.2f} {units[idx]}"


def get_directory_size(path: str) -> int:
    """Total size in bytes of all regular files below path."""
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                total += os.path.getsize(os.path.join(root, name))
            except OSError:
                continue
    return total


def find_volumes(output_path: str) -> List[str]:
    """Volume files for an archive path, in index order."""
    pattern = glob.escape(output_path) + '.[0-9][0-9][0-9]'
    return sorted(glob.glob(pattern))


class ArchiveBuilder:
    """
    Archive Builder - 7z subprocess

    The archive holds the *contents* of the source directory: callers lay
    out the top-level folders (one per gallery) before compressing.
    """

    # Images are already compressed; 7z typically saves 10-20% at most
    COMPRESSION_RATIO = 0.85

    def __init__(self, binary: str = None, compression_level: int = None):
        """
        Initialize archive builder.

        Args:
            binary: 7z executable name or path
            compression_level: 7z -mx level (0 = store, 9 = ultra)
        """
        self.binary = binary or config.SEVEN_ZIP_PATH
        level = config.ARCHIVE_COMPRESSION_LEVEL if compression_level is None else compression_level
        self.compression_level = min(9, max(0, level))

    async def create_archive(self, source_dir: str, output_path: str) -> List[str]:
        """
        Compress source_dir into a single archive file.

        Returns:
            [output_path]

        Raises:
            ArchiveError: If 7z fails or leaves no output
        """
        return await self._compress(source_dir, output_path, volume_size=None)

    async def create_and_split_if_needed(self, source_dir: str, output_path: str,
                                         max_volume_size: int = None) -> List[str]:
        """
        Compress source_dir, splitting into volumes when it would be too big.

        The size check is an estimate (raw size x COMPRESSION_RATIO); 7z
        itself enforces the volume cap once splitting is chosen. A single
        file that still comes out over the cap is rebuilt as volumes.

        Args:
            source_dir: Directory to compress
            output_path: Archive path (volumes get .001, .002, ... appended)
            max_volume_size: Largest allowed file in bytes

        Returns:
            Ordered list of archive file paths
        """
        max_volume_size = max_volume_size or config.MAX_VOLUME_SIZE

        loop = asyncio.get_running_loop()
        raw_size = await loop.run_in_executor(None, get_directory_size, source_dir)
        estimated = int(raw_size * self.COMPRESSION_RATIO)

        logger.info(
            f"Archive estimate for {os.path.basename(source_dir)}: "
            f"{format_bytes(raw_size)} raw, ~{format_bytes(estimated)} compressed "
            f"(cap {format_bytes(max_volume_size)})"
        )

        if estimated > max_volume_size:
            return await self._compress(source_dir, output_path, volume_size=max_volume_size)

        outputs = await self._compress(source_dir, output_path, volume_size=None)
        if os.path.getsize(outputs[0]) > max_volume_size:
            # Estimate was too optimistic; redo as volumes
            logger.info(
                f"Single archive is {format_bytes(os.path.getsize(outputs[0]))}, over the cap; "
                f"rebuilding in volumes"
            )
            self.remove_outputs(output_path)
            outputs = await self._compress(source_dir, output_path, volume_size=max_volume_size)
        return outputs

    async def _compress(self, source_dir: str, output_path: str,
                        volume_size: Optional[int]) -> List[str]:
        if not os.path.isdir(source_dir):
            raise ArchiveError(f"Source directory does not exist: {source_dir}")

        entries = sorted(os.listdir(source_dir))
        if not entries:
            raise ArchiveError(f"Nothing to archive in {source_dir}")

        output_path = os.path.abspath(output_path)
        os.makedirs(os.path.dirname(output_path), exist_ok=True)
        self.remove_outputs(output_path)

        cmd = [
            self.binary, 'a',
            '-t7z',
            f'-mx={self.compression_level}',
            '-y',
            '-bd',
        ]
        if volume_size:
            cmd.append(f'-v{int(volume_size)}b')
        cmd += [output_path, '--'] + entries

        logger.info(
            f"Creating archive: {os.path.basename(output_path)}"
            + (f" in volumes of {format_bytes(volume_size)}" if volume_size else "")
        )

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=source_dir,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except FileNotFoundError as e:
            raise ArchiveError(f"7z executable not found: {self.binary}") from e
        except OSError as e:
            raise ArchiveError(f"Failed to start 7z: {e}") from e

        stdout, stderr = await process.communicate()

        if process.returncode != 0:
            error_msg = (stderr or stdout).decode(errors='replace').strip()
            logger.error(f"7z exited with code {process.returncode}: {error_msg[-500:]}")
            self.remove_outputs(output_path)
            raise ArchiveError(f"7z failed with exit code {process.returncode}")

        if volume_size:
            outputs = find_volumes(output_path)
        else:
            outputs = [output_path] if os.path.isfile(output_path) else []

        if not outputs or any(os.path.getsize(p) == 0 for p in outputs):
            self.remove_outputs(output_path)
            raise ArchiveError(f"7z produced no output for {output_path}")

        total = sum(os.path.getsize(p) for p in outputs)
        logger.info(f"Archive created: {len(outputs)} file(s), {format_bytes(total)}")
        return outputs

    @staticmethod
    def remove_outputs(output_path: str) -> None:
        """Delete an archive and any of its volumes."""
        for path in [output_path] + find_volumes(output_path):
            try:
                if os.path.isfile(path):
                    os.remove(path)
            except OSError as e:
                logger.warning(f"Could not remove archive file {path}: {e}")
