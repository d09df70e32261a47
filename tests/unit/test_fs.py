"""Tests for create-with-retry, delete and recycle helpers."""

import errno
from unittest.mock import patch

import pytest

from rushgen.core.errors import FilesystemError
from rushgen.infra.fs import (
    RECYCLER_DIRNAME,
    Recycler,
    RetryPolicy,
    create_folder_with_retry,
    delete_path,
)


class TestRetryPolicy:
    def test_exponential_delays(self):
        policy = RetryPolicy(max_attempts=4, initial_delay_seconds=0.5, backoff_factor=2.0)
        assert list(policy.delays()) == [0.5, 1.0, 2.0]

    def test_single_attempt_has_no_delay(self):
        assert list(RetryPolicy(max_attempts=1).delays()) == []


class TestCreateFolderWithRetry:
    def test_creates_nested(self, tmp_path):
        target = tmp_path / "a" / "b"
        create_folder_with_retry(target)
        assert target.is_dir()

    def test_succeeds_after_transient_errors(self, tmp_path):
        target = tmp_path / "flaky"
        failures = [OSError(errno.EACCES, "locked by antivirus")] * 2
        sleeps = []

        def flaky_mkdir(path):
            if failures:
                raise failures.pop()
            path.mkdir()

        create_folder_with_retry(
            target, RetryPolicy(max_attempts=5, initial_delay_seconds=0.1),
            sleep=sleeps.append, mkdir=flaky_mkdir,
        )
        assert target.is_dir()
        assert sleeps == [0.1, 0.2]

    def test_exhaustion_raises_filesystem_error(self, tmp_path):
        calls = []
        sleeps = []

        def always_fail(path):
            calls.append(path)
            raise OSError(errno.EBUSY, "busy")

        with pytest.raises(FilesystemError) as exc:
            create_folder_with_retry(
                tmp_path / "never", RetryPolicy(max_attempts=3, initial_delay_seconds=0),
                sleep=sleeps.append, mkdir=always_fail,
            )
        assert len(calls) == 3
        assert len(sleeps) == 2
        assert "3 attempts" in str(exc.value)
        assert exc.value.path == tmp_path / "never"


class TestDeletePath:
    def test_deletes_tree(self, tmp_path):
        tree = tmp_path / "tree"
        (tree / "nested").mkdir(parents=True)
        (tree / "nested" / "f.txt").write_text("x")
        delete_path(tree)
        assert not tree.exists()

    def test_deletes_file(self, tmp_path):
        f = tmp_path / "npm-shrinkwrap.json"
        f.write_text("{}")
        delete_path(f)
        assert not f.exists()

    def test_missing_is_ignored(self, tmp_path):
        delete_path(tmp_path / "nothing")


class TestRecycler:
    @patch("subprocess.Popen")
    def test_moves_folder_aside(self, mock_popen, tmp_path):
        node_modules = tmp_path / "node_modules"
        (node_modules / "lodash").mkdir(parents=True)
        recycler = Recycler(tmp_path, async_delete=True)

        target = recycler.recycle(node_modules)

        assert not node_modules.exists()
        assert target is not None
        assert (target / "lodash").is_dir()
        assert target.parent.parent == tmp_path / RECYCLER_DIRNAME

    @patch("subprocess.Popen")
    def test_buckets_are_unique(self, mock_popen, tmp_path):
        recycler = Recycler(tmp_path, async_delete=True)
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        first = recycler.recycle(tmp_path / "a")
        second = recycler.recycle(tmp_path / "b")
        assert first.parent != second.parent

    def test_sync_mode_leaves_nothing_behind(self, tmp_path):
        recycler = Recycler(tmp_path, async_delete=False)
        for _ in range(3):
            (tmp_path / "node_modules" / "lodash").mkdir(parents=True)
            assert recycler.recycle(tmp_path / "node_modules") is None
        assert list((tmp_path / RECYCLER_DIRNAME).iterdir()) == []

    def test_purge_removes_leftover_buckets(self, tmp_path):
        for name in ("20260101-000000-1-1", "20260101-000000-1-2"):
            (tmp_path / RECYCLER_DIRNAME / name / "node_modules").mkdir(parents=True)
        recycler = Recycler(tmp_path, async_delete=False)
        assert recycler.purge() == 2
        assert list((tmp_path / RECYCLER_DIRNAME).iterdir()) == []

    def test_purge_without_recycler_folder(self, tmp_path):
        assert Recycler(tmp_path, async_delete=False).purge() == 0

    def test_async_delete_spawns_detached_process(self, tmp_path):
        (tmp_path / "node_modules").mkdir()
        recycler = Recycler(tmp_path, async_delete=True)
        with patch("subprocess.Popen") as mock_popen:
            target = recycler.recycle(tmp_path / "node_modules")
        mock_popen.assert_called_once()
        args, kwargs = mock_popen.call_args
        assert args[0][-1] == str(target.parent)
        assert kwargs["start_new_session"] is True

    def test_cross_device_falls_back_to_delete(self, tmp_path):
        folder = tmp_path / "node_modules"
        folder.mkdir()
        recycler = Recycler(tmp_path, async_delete=False)
        with patch("os.rename", side_effect=OSError(errno.EXDEV, "cross-device link")):
            assert recycler.recycle(folder) is None
        assert not folder.exists()

    def test_other_rename_errors_are_fatal(self, tmp_path):
        folder = tmp_path / "node_modules"
        folder.mkdir()
        recycler = Recycler(tmp_path, async_delete=False)
        with patch("os.rename", side_effect=OSError(errno.EACCES, "denied")):
            with pytest.raises(FilesystemError, match="recycle"):
                recycler.recycle(folder)
        assert folder.exists()
