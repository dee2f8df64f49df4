"""
Tests for scratch space, publishing and the cleanup loop
"""

import asyncio
import os
import time
from unittest.mock import AsyncMock, patch

import pytest

from gallery_bot.shared.errors import FilesystemError
from gallery_bot.utils.cleanup_manager import CleanupManager
from gallery_bot.utils.temp_manager import TempSpaceManager


def age(path, seconds):
    """Backdate a file or directory's mtime."""
    stamp = time.time() - seconds
    os.utime(path, (stamp, stamp))


@pytest.fixture
def temp_manager(tmp_path):
    return TempSpaceManager(
        temp_root=str(tmp_path / 'scratch'),
        public_root=str(tmp_path / 'public'),
        base_url='https://files.example.com/downloads/',
        temp_retention=3600,
        link_expiry=86400
    )


class TestTempDirs:
    """Test cases for scratch directory handling."""

    @pytest.mark.asyncio
    async def test_create_temp_dir_unique(self, temp_manager):
        first = await temp_manager.create_temp_dir('single_gallery')
        second = await temp_manager.create_temp_dir('single_gallery')

        assert first != second
        assert os.path.isdir(first) and os.path.isdir(second)
        assert os.path.basename(first).startswith('single_gallery_')
        assert os.path.dirname(first) == temp_manager.temp_root

    @pytest.mark.asyncio
    async def test_create_temp_dir_failure(self, tmp_path):
        blocker = tmp_path / 'file'
        blocker.write_text('x')
        manager = TempSpaceManager(temp_root=str(blocker / 'scratch'), public_root=str(tmp_path / 'p'))

        with pytest.raises(FilesystemError):
            await manager.create_temp_dir('job')

    @pytest.mark.asyncio
    async def test_delete_dir(self, temp_manager):
        path = await temp_manager.create_temp_dir('job')
        with open(os.path.join(path, 'a.jpg'), 'wb') as f:
            f.write(b'x')

        assert await temp_manager.delete_dir(path) is True
        assert not os.path.exists(path)
        # Missing directories are fine
        assert await temp_manager.delete_dir(path) is True

    @pytest.mark.asyncio
    async def test_delete_file_missing_is_ok(self, temp_manager, tmp_path):
        assert await temp_manager.delete_file(str(tmp_path / 'nope.7z')) is True
        assert await temp_manager.delete_file(None) is False

    @pytest.mark.asyncio
    async def test_cleanup_old_temp_dirs(self, temp_manager):
        stale = await temp_manager.create_temp_dir('stale')
        fresh = await temp_manager.create_temp_dir('fresh')
        await temp_manager.delete_dir(stale)
        os.makedirs(stale)
        age(stale, 7200)

        removed = await temp_manager.cleanup_old_temp_dirs()

        assert removed == 1
        assert not os.path.exists(stale)
        assert os.path.exists(fresh)

    @pytest.mark.asyncio
    async def test_cleanup_skips_active_dirs(self, temp_manager):
        active = await temp_manager.create_temp_dir('running')
        age(active, 7200)

        assert await temp_manager.cleanup_old_temp_dirs() == 0
        assert os.path.exists(active)

    @pytest.mark.asyncio
    async def test_cleanup_missing_root(self, temp_manager):
        assert await temp_manager.cleanup_old_temp_dirs() == 0
        assert await temp_manager.cleanup_expired_downloads() == 0


class TestPublishing:
    """Test cases for move_to_public_location and link expiry."""

    @pytest.fixture
    def archive(self, tmp_path):
        path = tmp_path / 'scratch_job' / 'set_1700000000.7z'
        path.parent.mkdir()
        path.write_bytes(b'7z-archive-bytes' * 64)
        return path

    @pytest.mark.asyncio
    async def test_move_to_public_location(self, temp_manager, archive):
        data = archive.read_bytes()

        dest = await temp_manager.move_to_public_location(str(archive))

        assert dest == os.path.join(temp_manager.public_root, archive.name)
        assert open(dest, 'rb').read() == data
        assert not archive.exists()
        assert not os.path.exists(dest + '.part')

    @pytest.mark.asyncio
    async def test_move_is_idempotent(self, temp_manager, archive):
        first = await temp_manager.move_to_public_location(str(archive))
        second = await temp_manager.move_to_public_location(str(archive))

        assert first == second
        assert os.path.isfile(second)

    @pytest.mark.asyncio
    async def test_move_resumes_after_source_not_deleted(self, temp_manager, archive):
        os.makedirs(temp_manager.public_root)
        dest = os.path.join(temp_manager.public_root, archive.name)
        with open(dest, 'wb') as f:
            f.write(archive.read_bytes())

        result = await temp_manager.move_to_public_location(str(archive))

        assert result == dest
        assert not archive.exists()

    @pytest.mark.asyncio
    async def test_move_replaces_truncated_copy(self, temp_manager, archive):
        os.makedirs(temp_manager.public_root)
        dest = os.path.join(temp_manager.public_root, archive.name)
        with open(dest, 'wb') as f:
            f.write(b'partial')

        await temp_manager.move_to_public_location(str(archive))

        assert os.path.getsize(dest) == len(b'7z-archive-bytes' * 64)

    @pytest.mark.asyncio
    async def test_copy_failure_keeps_source(self, temp_manager, archive):
        with patch('gallery_bot.utils.temp_manager.shutil.copyfile', side_effect=OSError('No space left')):
            with pytest.raises(FilesystemError):
                await temp_manager.move_to_public_location(str(archive))

        assert archive.exists()
        assert os.listdir(temp_manager.public_root) == []

    @pytest.mark.asyncio
    async def test_missing_source_raises(self, temp_manager, tmp_path):
        with pytest.raises(FilesystemError):
            await temp_manager.move_to_public_location(str(tmp_path / 'ghost.7z'))

    def test_public_url(self, temp_manager):
        url = temp_manager.public_url('/srv/public/my set_1.7z.001')

        assert url == 'https://files.example.com/downloads/my%20set_1.7z.001'

    @pytest.mark.asyncio
    async def test_expired_downloads_removed(self, temp_manager, archive):
        dest = await temp_manager.move_to_public_location(str(archive))
        fresh = os.path.join(temp_manager.public_root, 'fresh.7z')
        with open(fresh, 'wb') as f:
            f.write(b'x')
        age(dest, 90000)

        removed = await temp_manager.cleanup_expired_downloads()

        assert removed == 1
        assert not os.path.exists(dest)
        assert os.path.exists(fresh)


class TestCleanupManager:
    """Test cases for CleanupManager."""

    @pytest.mark.asyncio
    async def test_run_once(self, temp_manager):
        stale = os.path.join(temp_manager.temp_root, 'old_job')
        os.makedirs(stale)
        age(stale, 7200)

        stats = await CleanupManager(temp_manager).run_once()

        assert stats == {'temp_dirs': 1, 'downloads': 0}

    @pytest.mark.asyncio
    async def test_run_once_survives_errors(self, temp_manager):
        manager = CleanupManager(temp_manager)

        with patch.object(temp_manager, 'cleanup_old_temp_dirs', new_callable=AsyncMock) as mock_clean:
            mock_clean.side_effect = RuntimeError("boom")
            stats = await manager.run_once()

        assert stats == {'temp_dirs': 0, 'downloads': 0}
        assert manager.last_run is not None

    @pytest.mark.asyncio
    async def test_start_background_and_stop(self, temp_manager):
        manager = CleanupManager(temp_manager)

        with patch.object(manager, 'run_once', new_callable=AsyncMock) as mock_run:
            task = manager.start_background(interval_minutes=60)
            await asyncio.sleep(0.01)

            assert manager.running is True
            mock_run.assert_awaited()

            manager.stop()
            await asyncio.gather(task, return_exceptions=True)

        assert manager.running is False
        assert manager.task is None
        assert manager.get_status()['running'] is False

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, temp_manager):
        manager = CleanupManager(temp_manager)
        manager.running = True

        await manager.start()

        assert manager.task is None

    @pytest.mark.asyncio
    async def test_shutdown_waits_for_task(self, temp_manager):
        manager = CleanupManager(temp_manager)

        with patch.object(manager, 'run_once', new_callable=AsyncMock):
            task = manager.start_background(interval_minutes=60)
            await asyncio.sleep(0.01)

            await manager.shutdown()

        assert task.done()
        assert manager.task is None
        assert manager.running is False

    @pytest.mark.asyncio
    async def test_shutdown_without_task(self, temp_manager):
        manager = CleanupManager(temp_manager)

        await manager.shutdown()

        assert manager.running is False
