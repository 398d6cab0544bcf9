"""Tests for the sync engine."""

import os
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from pydrivesync.exceptions import (
    DriveAuthenticationError,
    DriveConfigError,
    SyncIndexError,
)
from pydrivesync.sync import (
    SyncContext,
    SyncEngine,
    SyncIndex,
    SyncOutcome,
)
from pydrivesync.sync.scanner import PARTIAL_SUFFIX
from pydrivesync.utils import parse_iso_timestamp, timestamp_to_ns


def set_mtime(path: Path, iso: str) -> None:
    """Set a file's modification time from an ISO timestamp."""
    ns = timestamp_to_ns(parse_iso_timestamp(iso))
    os.utime(path, ns=(ns, ns))


def write_file(path: Path, content: str, modified: str = "2025-03-01T08:00:00.000Z"):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    set_mtime(path, modified)
    return path


@pytest.fixture
def index(tmp_path):
    """Create a persistent sync index in a temporary directory."""
    with SyncIndex(tmp_path / "index.db") as sync_index:
        yield sync_index


@pytest.fixture
def make_engine(remote, local_root, index, mock_output):
    """Build engines sharing the same remote, local root and index."""

    def factory(**kwargs):
        options = {
            "client": remote,
            "local_root": local_root,
            "remote_folder_id": remote.root_id,
            "index": index,
            "output": mock_output,
        }
        options.update(kwargs)
        return SyncEngine(SyncContext(**options))

    return factory


class TestSyncEngineSetup:
    """Test SyncEngine construction."""

    def test_create_sync_engine(self, remote, local_root, index, mock_output):
        """Test creating a sync engine."""
        context = SyncContext(remote, local_root, remote.root_id, index, mock_output)
        engine = SyncEngine(context)
        assert engine.context is context
        assert engine.output == mock_output
        assert engine.executor.root_folder_id == remote.root_id

    def test_missing_remote_folder_id(self, remote, local_root, index):
        """Test that an empty remote folder id is rejected."""
        with pytest.raises(DriveConfigError, match="Remote folder ID"):
            SyncEngine(SyncContext(remote, local_root, "", index))


class TestLocalToRemote:
    """Test the local-to-remote pass."""

    def test_new_files_are_created_once(self, make_engine, remote, local_root, index):
        """Test that every unindexed file is uploaded exactly once."""
        write_file(local_root / "a.txt", "alpha")
        write_file(local_root / "b.txt", "beta")

        summary = make_engine().sync_local_to_remote()

        assert summary.count(SyncOutcome.CREATED) == 2
        assert sorted(remote.uploads) == ["a.txt", "b.txt"]
        record = index.get("a.txt")
        assert record is not None
        assert remote.entries[record.remote_id]["name"] == "a.txt"
        assert remote.contents[record.remote_id] == b"alpha"
        assert len(index) == 2

    def test_second_run_transfers_nothing(self, make_engine, remote, local_root):
        """Test idempotence of the local-to-remote pass."""
        write_file(local_root / "a.txt", "alpha")
        write_file(local_root / "docs" / "b.txt", "beta")

        make_engine().sync_local_to_remote()
        summary = make_engine().sync_local_to_remote()

        assert summary.transfers == 0
        assert summary.count(SyncOutcome.SKIPPED) == 2
        assert len(remote.uploads) == 2

    def test_interrupted_download_is_not_uploaded(self, make_engine, remote, local_root):
        """Test that a leftover partial download never reaches the remote."""
        write_file(local_root / "a.txt", "alpha")
        write_file(local_root / f"big.bin{PARTIAL_SUFFIX}", "half")

        summary = make_engine().sync_local_to_remote()

        assert summary.count(SyncOutcome.CREATED) == 1
        assert remote.uploads == ["a.txt"]

    def test_newer_local_file_is_updated(self, make_engine, remote, local_root, index):
        """Test that a strictly newer local file updates the mapped remote file."""
        path = write_file(local_root / "a.txt", "alpha")
        make_engine().sync_local_to_remote()
        remote_id = index.get("a.txt").remote_id

        path.write_text("alpha v2")
        set_mtime(path, "2025-03-02T09:15:00.250Z")
        summary = make_engine().sync_local_to_remote()

        assert summary.count(SyncOutcome.UPDATED) == 1
        assert summary.count(SyncOutcome.CREATED) == 0
        assert remote.updates == ["a.txt"]
        assert remote.contents[remote_id] == b"alpha v2"
        record = index.get("a.txt")
        assert record.remote_id == remote_id
        assert record.last_synced_modified == parse_iso_timestamp(
            "2025-03-02T09:15:00.250Z"
        )

    def test_equal_timestamp_is_skipped(self, make_engine, remote, local_root, index):
        """Test that a local file as old as its record is not transferred."""
        write_file(local_root / "a.txt", "alpha", "2025-03-01T08:00:00.000Z")
        index.upsert("a.txt", "file-x", parse_iso_timestamp("2025-03-01T08:00:00.000Z"))

        summary = make_engine().sync_local_to_remote()

        assert summary.count(SyncOutcome.SKIPPED) == 1
        assert remote.uploads == []
        assert remote.updates == []

    def test_older_local_file_is_skipped(self, make_engine, remote, local_root, index):
        """Test that a local file older than its record is not transferred."""
        write_file(local_root / "a.txt", "alpha", "2025-01-01T00:00:00.000Z")
        index.upsert("a.txt", "file-x", parse_iso_timestamp("2025-03-01T08:00:00.000Z"))

        summary = make_engine().sync_local_to_remote()

        assert summary.transfers == 0
        assert remote.updates == []

    def test_subdirectories_are_mirrored_remotely(self, make_engine, remote, local_root):
        """Test that local subdirectories become remote folders."""
        write_file(local_root / "docs" / "notes" / "n.txt", "note")
        write_file(local_root / "docs" / "d.txt", "doc")

        make_engine().sync_local_to_remote()

        docs = remote.children_named("docs")
        assert len(docs) == 1
        notes = remote.children_named("notes", docs[0]["id"])
        assert len(notes) == 1
        assert remote.children_named("n.txt", notes[0]["id"])
        assert remote.children_named("d.txt", docs[0]["id"])
        assert remote.folders_created == ["docs", "notes"]

    def test_existing_remote_folder_is_reused(self, make_engine, remote, local_root):
        """Test that an existing remote folder is not created again."""
        docs_id = remote.add_folder("docs")
        write_file(local_root / "docs" / "d.txt", "doc")

        make_engine().sync_local_to_remote()

        assert remote.folders_created == []
        assert remote.children_named("d.txt", docs_id)

    def test_failure_is_isolated(self, make_engine, remote, local_root, index):
        """Test that one failed upload neither stops the pass nor gets recorded."""
        for name in ("a.txt", "b.txt", "c.txt"):
            write_file(local_root / name, name)
        remote.fail_uploads.add("b.txt")

        summary = make_engine().sync_local_to_remote()

        assert summary.count(SyncOutcome.CREATED) == 2
        assert summary.failed == 1
        assert summary.failures[0].relative_path == "b.txt"
        assert index.get("a.txt") is not None
        assert index.get("b.txt") is None
        assert index.get("c.txt") is not None

        remote.fail_uploads.clear()
        retry = make_engine().sync_local_to_remote()

        assert retry.count(SyncOutcome.CREATED) == 1
        assert retry.count(SyncOutcome.SKIPPED) == 2
        assert index.get("b.txt") is not None

    def test_index_write_failure_is_fatal(self, remote, local_root, mock_output):
        """Test that a failing index write aborts the pass."""
        write_file(local_root / "a.txt", "alpha")
        failing_index = Mock(spec=SyncIndex)
        failing_index.lookup_by_local_path.return_value = None
        failing_index.upsert.side_effect = SyncIndexError("disk I/O error")
        engine = SyncEngine(
            SyncContext(remote, local_root, remote.root_id, failing_index, mock_output)
        )

        with pytest.raises(SyncIndexError):
            engine.sync_local_to_remote()

    def test_authentication_failure_is_fatal(self, make_engine, remote, local_root):
        """Test that a rejected token aborts the pass instead of failing one file."""
        write_file(local_root / "a.txt", "alpha")

        with patch.object(
            remote, "create_file", side_effect=DriveAuthenticationError("expired")
        ):
            with pytest.raises(DriveAuthenticationError):
                make_engine().sync_local_to_remote()

    def test_progress_is_reported(self, make_engine, local_root):
        """Test that the observer receives byte progress per file."""
        write_file(local_root / "a.txt", "alpha")
        observer = Mock()

        make_engine(observer=observer).sync_local_to_remote()

        observer.on_progress.assert_called_with("a.txt", 5, 5)


class TestRemoteToLocal:
    """Test the remote-to-local pass."""

    def test_new_remote_file_is_fetched(self, make_engine, remote, local_root, index):
        """Test downloading a file that is not in the index."""
        file_id = remote.add_file(
            "r.txt", content=b"remote", modified="2025-02-01T12:00:00.123Z"
        )

        summary = make_engine().sync_remote_to_local()

        assert summary.count(SyncOutcome.FETCHED) == 1
        local = local_root / "r.txt"
        assert local.read_bytes() == b"remote"
        assert local.stat().st_mtime_ns == timestamp_to_ns(
            parse_iso_timestamp("2025-02-01T12:00:00.123Z")
        )
        record = index.get("r.txt")
        assert record.remote_id == file_id
        assert record.last_synced_modified == parse_iso_timestamp(
            "2025-02-01T12:00:00.123Z"
        )

    @pytest.mark.parametrize("reverse_listing", [False, True])
    def test_nested_folders_are_mirrored(
        self, make_engine, remote, local_root, reverse_listing
    ):
        """Test that remote A/B/file.txt lands locally whatever the listing order."""
        remote.reverse_listing = reverse_listing
        folder_a = remote.add_folder("A")
        folder_b = remote.add_folder("B", folder_a)
        remote.add_file("file.txt", folder_b, content=b"deep")
        remote.add_file("top.txt", remote.root_id, content=b"top")

        summary = make_engine().sync_remote_to_local()

        assert (local_root / "A").is_dir()
        assert (local_root / "A" / "B").is_dir()
        assert (local_root / "A" / "B" / "file.txt").read_bytes() == b"deep"
        assert (local_root / "top.txt").read_bytes() == b"top"
        assert summary.count(SyncOutcome.FOLDER_CREATED) == 2
        assert summary.count(SyncOutcome.FETCHED) == 2

    def test_existing_local_folder_is_reported(self, make_engine, remote, local_root):
        """Test that an already mirrored folder counts as existing."""
        (local_root / "A").mkdir()
        remote.add_folder("A")

        summary = make_engine().sync_remote_to_local()

        assert summary.count(SyncOutcome.EXISTS) == 1
        assert summary.count(SyncOutcome.FOLDER_CREATED) == 0

    def test_changed_remote_file_is_fetched_again(
        self, make_engine, remote, local_root
    ):
        """Test that a strictly newer remote file replaces the local copy."""
        file_id = remote.add_file("r.txt", content=b"v1")
        make_engine().sync_remote_to_local()

        remote.touch(file_id, b"v2", "2025-06-01T00:00:00.000Z")
        summary = make_engine().sync_remote_to_local()

        assert summary.count(SyncOutcome.FETCHED) == 1
        assert (local_root / "r.txt").read_bytes() == b"v2"

        again = make_engine().sync_remote_to_local()
        assert again.transfers == 0

    def test_listing_failure_skips_only_that_subtree(
        self, make_engine, remote, local_root
    ):
        """Test that an unlistable folder does not stop its siblings."""
        broken = remote.add_folder("broken")
        remote.add_file("lost.txt", broken)
        healthy = remote.add_folder("healthy")
        remote.add_file("kept.txt", healthy)
        remote.fail_listings.add(broken)

        summary = make_engine().sync_remote_to_local()

        assert summary.failed == 1
        assert summary.failures[0].relative_path == "broken"
        assert (local_root / "healthy" / "kept.txt").exists()
        assert not (local_root / "broken" / "lost.txt").exists()

    def test_download_failure_leaves_no_partial_file(
        self, make_engine, remote, local_root, index
    ):
        """Test that a failed download is not recorded and cleans up."""
        remote.add_file("bad.txt")
        remote.add_file("good.txt")
        remote.fail_downloads.add("bad.txt")

        summary = make_engine().sync_remote_to_local()

        assert summary.failed == 1
        assert summary.count(SyncOutcome.FETCHED) == 1
        assert not (local_root / "bad.txt").exists()
        assert not (local_root / f"bad.txt{PARTIAL_SUFFIX}").exists()
        assert index.get("bad.txt") is None
        assert index.get("good.txt") is not None

    def test_google_documents_are_skipped(self, make_engine, remote, local_root):
        """Test that Docs/Sheets entries are not downloaded."""
        remote.add_file("Plan", mime_type="application/vnd.google-apps.document")

        summary = make_engine().sync_remote_to_local()

        assert summary.count(SyncOutcome.SKIPPED) == 1
        assert remote.downloads == []
        assert not (local_root / "Plan").exists()

    def test_missing_modified_time_is_skipped(self, make_engine, remote):
        """Test that a remote file without a timestamp is left alone."""
        remote.add_file("undated.txt", modified=None)

        summary = make_engine().sync_remote_to_local()

        assert summary.count(SyncOutcome.SKIPPED) == 1
        assert remote.downloads == []

    def test_unsafe_remote_name_fails(self, make_engine, remote, tmp_path):
        """Test that names escaping the sync root are refused."""
        remote.add_file("..")
        remote.add_folder("../escape")

        summary = make_engine().sync_remote_to_local()

        assert summary.failed == 2
        assert remote.downloads == []
        assert not (tmp_path / "escape").exists()

    def test_pull_replaces_unindexed_local_file(self, make_engine, remote, local_root):
        """Test that an unknown remote file overwrites a local file of the same name."""
        write_file(local_root / "report.txt", "local draft")
        remote.add_file("report.txt", content=b"remote final")

        summary = make_engine().sync_remote_to_local()

        assert summary.count(SyncOutcome.FETCHED) == 1
        assert (local_root / "report.txt").read_bytes() == b"remote final"


class TestFullSync:
    """Test complete two-pass runs."""

    def test_uploaded_files_are_not_fetched_back(self, make_engine, remote, local_root):
        """Test that files uploaded in pass one are skipped in pass two."""
        write_file(local_root / "a.txt", "alpha")
        write_file(local_root / "sub" / "b.txt", "beta")

        summary = make_engine().run()

        assert summary.count(SyncOutcome.CREATED) == 2
        assert summary.count(SyncOutcome.FETCHED) == 0
        assert summary.count(SyncOutcome.EXISTS) == 1
        assert summary.failed == 0

    def test_run_is_idempotent(self, make_engine, remote, local_root):
        """Test that a second run without changes transfers nothing."""
        write_file(local_root / "a.txt", "alpha")
        remote.add_file("r.txt")

        first = make_engine().run()
        second = make_engine().run()

        assert first.transfers == 2
        assert second.transfers == 0
        assert second.failed == 0

    def test_update_is_not_fetched_back(self, make_engine, remote, local_root):
        """Test that a local update does not bounce back as a download."""
        path = write_file(local_root / "a.txt", "alpha")
        make_engine().run()

        path.write_text("alpha v2")
        set_mtime(path, "2025-04-01T00:00:00.000Z")
        summary = make_engine().run()

        assert summary.count(SyncOutcome.UPDATED) == 1
        assert summary.count(SyncOutcome.FETCHED) == 0

    def test_pull_only_skips_uploads(self, make_engine, remote, local_root):
        """Test that --pull-only never uploads."""
        write_file(local_root / "local.txt", "local")
        remote.add_file("remote.txt", content=b"remote")

        summary = make_engine().run(pull_only=True)

        assert remote.uploads == []
        assert summary.count(SyncOutcome.FETCHED) == 1
        assert (local_root / "remote.txt").read_bytes() == b"remote"

    def test_dry_run_changes_nothing(self, remote, tmp_path, index, mock_output):
        """Test that a dry run plans actions without performing them."""
        local_root = tmp_path / "not-created-yet"
        folder = remote.add_folder("R")
        remote.add_file("r.txt", folder)
        entries_before = dict(remote.entries)
        engine = SyncEngine(
            SyncContext(
                remote, local_root, remote.root_id, index, mock_output, dry_run=True
            )
        )

        summary = engine.run()

        assert summary.dry_run
        assert summary.count(SyncOutcome.FOLDER_CREATED) == 1
        assert summary.count(SyncOutcome.FETCHED) == 1
        assert remote.entries == entries_before
        assert remote.downloads == []
        assert not local_root.exists()
        assert len(index) == 0

    def test_dry_run_plans_uploads(self, make_engine, remote, local_root, index):
        """Test that a dry run reports would-be uploads."""
        write_file(local_root / "a.txt", "alpha")

        summary = make_engine(dry_run=True).run()

        assert summary.count(SyncOutcome.CREATED) == 1
        assert remote.uploads == []
        assert len(index) == 0

    def test_in_memory_index_correlates_within_run(self, remote, local_root, mock_output):
        """Test that --no-index treats files as new but never fetches own uploads."""
        write_file(local_root / "a.txt", "alpha")

        first = SyncEngine(
            SyncContext(
                remote, local_root, remote.root_id, SyncIndex.in_memory(), mock_output
            )
        ).run()
        second = SyncEngine(
            SyncContext(
                remote, local_root, remote.root_id, SyncIndex.in_memory(), mock_output
            )
        ).run()

        assert first.count(SyncOutcome.CREATED) == 1
        assert first.count(SyncOutcome.FETCHED) == 0
        assert second.count(SyncOutcome.CREATED) == 1


class TestSyncOutput:
    """Test user-facing output of the engine."""

    @pytest.fixture
    def verbose_output(self, mock_output):
        mock_output.quiet = False
        return mock_output

    def test_reports_each_file(self, make_engine, local_root, verbose_output):
        """Test per-file lines and the summary."""
        write_file(local_root / "a.txt", "alpha")

        make_engine().run()

        verbose_output.info.assert_any_call("  ↑ Created: a.txt")
        verbose_output.success.assert_called_with("Sync complete!")

    def test_reports_failures_as_errors(self, make_engine, remote, local_root, mock_output):
        """Test that failures are shown even in quiet mode."""
        write_file(local_root / "b.txt", "beta")
        remote.fail_uploads.add("b.txt")

        make_engine().run()

        mock_output.error.assert_called_once_with(
            "Failed: b.txt: Upload of b.txt failed"
        )
        mock_output.info.assert_not_called()

    def test_reports_nothing_to_do(self, make_engine, verbose_output):
        """Test the message for an already synced pair."""
        make_engine().run()

        verbose_output.info.assert_any_call(
            "No changes needed - everything is in sync!"
        )

    def test_dry_run_lines(self, make_engine, local_root, verbose_output):
        """Test would-be action lines in dry-run mode."""
        write_file(local_root / "a.txt", "alpha")

        make_engine(dry_run=True).run()

        verbose_output.info.assert_any_call("  ↑ Would create: a.txt")
        verbose_output.success.assert_called_with("Dry run complete!")
