"""Tests for PinBoard."""

import errno
from unittest.mock import patch

import orjson
import pytest

from pinstore import BoardConfig, PinBoard
from pinstore.cache import CacheHit
from pinstore.errors import (
    CacheDiskFullError,
    CorruptMetadata,
    InvalidPinName,
    NoVersionsYet,
    PinNotFound,
    PinVersionConflict,
    RemoteNotFound,
    VersionNotFound,
)
from pinstore.metadata import PinMetadata
from pinstore.remote import FolderRemoteStore
from pinstore.versions import UNVERSIONED_SLOT


def store_mtcars(board, csv, **kwargs):
    return board.pin_store("mtcars", [csv], {"file": ["mtcars.csv"], "type": "table"}, **kwargs)


@pytest.fixture
def unversioned_board(remote, tmp_path):
    """Unversioned board sharing the in-memory remote store."""
    config = BoardConfig("mem://test", versioned=False, cache_dir=tmp_path / "cache2")
    return PinBoard(config, remote=remote)


class TestStoreAndFetch:
    """Test writing pins and reading them back."""

    def test_end_to_end(self, board, remote, mtcars_csv):
        """Test a stored pin is fetched byte-for-byte and then served from cache."""
        assert store_mtcars(board, mtcars_csv) == "mtcars"

        local = board.pin_fetch("mtcars")
        assert local.name == "mtcars"
        assert local.meta.type == "table"
        assert (local.dir / "mtcars.csv").read_bytes() == mtcars_csv.read_bytes()

        data_path = f"pins/mtcars/{local.version}/mtcars.csv"
        assert remote.gets.count(data_path) == 1

        board.pin_fetch("mtcars")
        assert remote.gets.count(data_path) == 1

    def test_cache_hit_after_fetch(self, board, mtcars_csv):
        """Test lookup after fetch is a hit with the remote bytes."""
        store_mtcars(board, mtcars_csv)
        local = board.pin_fetch("mtcars")

        result = board.cache.lookup("mtcars", local.version)
        assert isinstance(result, CacheHit)
        assert result.paths[0].read_bytes() == mtcars_csv.read_bytes()

    def test_metadata_uploaded_first(self, board, remote, mtcars_csv):
        """Test the metadata file lands before the data files."""
        store_mtcars(board, mtcars_csv)
        version = board.pin_versions("mtcars")[0]

        written = [p for p in remote.files if p.startswith(f"pins/mtcars/{version}/")]
        assert written == [
            f"pins/mtcars/{version}/data.txt",
            f"pins/mtcars/{version}/mtcars.csv",
        ]

    def test_store_fills_sizes_and_hashes(self, board, mtcars_csv):
        """Test stored metadata records sizes and hashes of the files."""
        store_mtcars(board, mtcars_csv)
        meta = board.pin_meta("mtcars").meta

        assert meta.file_size == {"mtcars.csv": mtcars_csv.stat().st_size}
        assert len(meta.file_hash["mtcars.csv"]) == 64
        assert meta.pin_hash is not None
        assert meta.created is not None

    def test_store_with_record(self, board, mtcars_csv):
        """Test a PinMetadata record is accepted as metadata."""
        record = PinMetadata(file=["mtcars.csv"], type="csv", title="Motor Trend")
        board.pin_store("mtcars", [mtcars_csv], record)

        assert board.pin_meta("mtcars").meta.title == "Motor Trend"
        # The caller's record is not modified
        assert record.file_hash == {}

    def test_file_list_must_match(self, board, mtcars_csv):
        """Test metadata must name exactly the given files."""
        with pytest.raises(ValueError, match="Metadata lists files"):
            board.pin_store("mtcars", [mtcars_csv], {"file": ["other.csv"], "type": "table"})

    def test_upload_and_download(self, board, mtcars_csv):
        """Test the convenience wrappers."""
        board.pin_upload([mtcars_csv], "mtcars", type="csv", tags=["cars"], user={"n": 3})

        paths = board.pin_download("mtcars")
        assert [p.name for p in paths] == ["mtcars.csv"]
        assert paths[0].read_bytes() == mtcars_csv.read_bytes()

        meta = board.pin_meta("mtcars").meta
        assert meta.tags == ["cars"]
        assert meta.user == {"n": 3}

    def test_multiple_versions(self, board, mtcars_csv):
        """Test each versioned store adds a version and the newest is the default."""
        store_mtcars(board, mtcars_csv)
        mtcars_csv.write_text("model,mpg\nValiant,18.1\n")
        store_mtcars(board, mtcars_csv)

        versions = board.pin_versions("mtcars")
        assert len(versions) == 2
        assert versions == sorted(versions)

        local = board.pin_fetch("mtcars")
        assert local.version == versions[-1]
        assert "Valiant" in (local.dir / "mtcars.csv").read_text()

        old = board.pin_fetch("mtcars", versions[0])
        assert "Valiant" not in (old.dir / "mtcars.csv").read_text()

    def test_version_info(self, board, mtcars_csv):
        """Test parsed version info is available."""
        store_mtcars(board, mtcars_csv)
        [info] = board.pin_version_info("mtcars")
        assert info.version == board.pin_versions("mtcars")[0]
        assert info.created is not None
        assert len(info.hash) == 5


class TestNotFound:
    """Test not-found semantics."""

    def test_versions_of_missing_pin(self, board):
        """Test listing versions of a missing pin raises PinNotFound."""
        with pytest.raises(PinNotFound):
            board.pin_versions("missingPin")

    def test_bogus_version(self, board, mtcars_csv):
        """Test reading an unknown version raises VersionNotFound."""
        store_mtcars(board, mtcars_csv)
        with pytest.raises(VersionNotFound) as excinfo:
            board.pin_meta("mtcars", "bogus-version")
        assert excinfo.value.name == "mtcars"

    def test_version_without_metadata(self, board, remote, mtcars_csv):
        """Test a version directory lacking data.txt raises VersionNotFound."""
        store_mtcars(board, mtcars_csv)
        version = board.pin_versions("mtcars")[0]
        del remote.files[f"pins/mtcars/{version}/data.txt"]

        with pytest.raises(VersionNotFound):
            board.pin_meta("mtcars")

    def test_incomplete_version(self, board, remote, mtcars_csv):
        """Test a version whose data file never landed raises RemoteNotFound."""
        store_mtcars(board, mtcars_csv)
        version = board.pin_versions("mtcars")[0]
        del remote.files[f"pins/mtcars/{version}/mtcars.csv"]

        with pytest.raises(RemoteNotFound):
            board.pin_fetch("mtcars")
        assert not isinstance(board.cache.lookup("mtcars", version), CacheHit)

    def test_pin_list(self, board, mtcars_csv):
        """Test all pin names are listed."""
        assert board.pin_list() == set()
        store_mtcars(board, mtcars_csv)
        board.pin_store("other", [mtcars_csv], {"file": ["mtcars.csv"], "type": "table"})
        assert board.pin_list() == {"mtcars", "other"}


class TestPinNames:
    """Test pin name validation at the board surface."""

    @pytest.mark.parametrize("name", ["", "a/b", "../etc", ".hidden", "a b", "x" * 256])
    def test_invalid_names(self, board, mtcars_csv, name):
        """Test invalid names are rejected before any remote call."""
        with pytest.raises(InvalidPinName):
            board.pin_exists(name)
        with pytest.raises(InvalidPinName):
            board.pin_store(name, [mtcars_csv], {"file": ["mtcars.csv"], "type": "table"})

    def test_invalid_version_delete(self, board, remote, mtcars_csv):
        """Test version names that are not version IDs are rejected."""
        store_mtcars(board, mtcars_csv)
        with pytest.raises(VersionNotFound):
            board.pin_version_delete("mtcars", "..")
        assert remote.calls["delete_tree"] == 0


class TestDelete:
    """Test deleting pins and versions."""

    def test_delete_pin(self, board, mtcars_csv):
        """Test delete removes the pin remotely and in the cache."""
        store_mtcars(board, mtcars_csv)
        local = board.pin_fetch("mtcars")
        assert local.dir.exists()

        board.pin_delete("mtcars")

        assert not board.pin_exists("mtcars")
        with pytest.raises(PinNotFound):
            board.pin_versions("mtcars")
        assert not (board.cache.cache_dir / "mtcars").exists()
        assert board.cache.index.get_entry("mtcars", local.version) is None

    def test_delete_checks_all_names_first(self, board, mtcars_csv):
        """Test nothing is deleted when one of the pins is missing."""
        store_mtcars(board, mtcars_csv)

        with pytest.raises(PinNotFound):
            board.pin_delete(["mtcars", "missing"])
        assert board.pin_exists("mtcars")

    def test_delete_last_version(self, board, mtcars_csv):
        """Test deleting the only version leaves a pin with no versions."""
        store_mtcars(board, mtcars_csv)
        version = board.pin_versions("mtcars")[0]
        board.pin_fetch("mtcars")

        board.pin_version_delete("mtcars", version)

        assert board.pin_exists("mtcars")
        assert board.pin_versions("mtcars") == []
        assert not board.cache.version_dir("mtcars", version).exists()
        with pytest.raises(NoVersionsYet):
            board.pin_meta("mtcars")
        with pytest.raises(NoVersionsYet):
            board.pin_fetch("mtcars")

    def test_delete_one_of_two_versions(self, board, mtcars_csv):
        """Test the remaining version becomes the latest."""
        store_mtcars(board, mtcars_csv)
        mtcars_csv.write_text("model\nValiant\n")
        store_mtcars(board, mtcars_csv)
        first, second = board.pin_versions("mtcars")

        board.pin_version_delete("mtcars", second)

        assert board.pin_versions("mtcars") == [first]
        assert board.pin_meta("mtcars").version == first


class TestUnversioned:
    """Test the single unversioned slot."""

    def test_overwrite(self, unversioned_board, mtcars_csv):
        """Test two unversioned stores leave one version with the second content."""
        unversioned_board.pin_store(
            "mtcars", [mtcars_csv], {"file": ["mtcars.csv"], "type": "table", "title": "one"}
        )
        unversioned_board.pin_fetch("mtcars")
        mtcars_csv.write_text("model\nValiant\n")
        unversioned_board.pin_store(
            "mtcars", [mtcars_csv], {"file": ["mtcars.csv"], "type": "table", "title": "two"}
        )

        assert unversioned_board.pin_versions("mtcars") == [UNVERSIONED_SLOT]
        local = unversioned_board.pin_fetch("mtcars")
        assert local.meta.title == "two"
        assert (local.dir / "mtcars.csv").read_text() == "model\nValiant\n"

    def test_overwrite_removes_stale_files(self, unversioned_board, remote, tmp_path, mtcars_csv):
        """Test files of the replaced content are deleted."""
        extra = tmp_path / "extra.txt"
        extra.write_text("extra")
        unversioned_board.pin_store(
            "mtcars",
            [mtcars_csv, extra],
            {"file": ["mtcars.csv", "extra.txt"], "type": "table"},
        )
        unversioned_board.pin_store("mtcars", [mtcars_csv], {"file": ["mtcars.csv"], "type": "table"})

        assert f"pins/mtcars/{UNVERSIONED_SLOT}/extra.txt" not in remote.files

    def test_overwrite_seen_by_other_cache(self, board, unversioned_board, mtcars_csv):
        """Test a reader with a stale cached slot picks up the new content."""
        store_mtcars(unversioned_board, mtcars_csv)
        assert board.pin_fetch("mtcars").version == UNVERSIONED_SLOT

        # Same size, different bytes
        original = mtcars_csv.read_text()
        mtcars_csv.write_text(original.replace("Mazda", "MAZDA"))
        unversioned_board.pin_store(
            "mtcars", [mtcars_csv], {"file": ["mtcars.csv"], "type": "table"}
        )

        local = board.pin_fetch("mtcars")
        assert "MAZDA" in (local.dir / "mtcars.csv").read_text()

    def test_replaces_single_version(self, board, unversioned_board, mtcars_csv):
        """Test an unversioned store replaces a pin's only timestamped version."""
        store_mtcars(board, mtcars_csv)
        store_mtcars(unversioned_board, mtcars_csv)

        assert unversioned_board.pin_versions("mtcars") == [UNVERSIONED_SLOT]

    def test_conflict_with_several_versions(self, board, mtcars_csv):
        """Test an unversioned store on a multi-version pin is refused."""
        store_mtcars(board, mtcars_csv)
        mtcars_csv.write_text("model\nValiant\n")
        store_mtcars(board, mtcars_csv)

        with pytest.raises(PinVersionConflict):
            store_mtcars(board, mtcars_csv, versioned=False)
        assert len(board.pin_versions("mtcars")) == 2

    def test_conflict_versioned_after_unversioned(self, board, mtcars_csv):
        """Test a versioned store on an unversioned pin is refused."""
        store_mtcars(board, mtcars_csv, versioned=False)

        with pytest.raises(PinVersionConflict):
            store_mtcars(board, mtcars_csv)


class TestFolderBoard:
    """Test a board on a real folder store."""

    def test_round_trip(self, tmp_path, mtcars_csv):
        """Test storing, fetching and deleting on a folder board."""
        board = PinBoard.from_url(str(tmp_path / "board"), cache_dir=tmp_path / "cache")
        assert isinstance(board.remote, FolderRemoteStore)

        store_mtcars(board, mtcars_csv)
        version = board.pin_versions("mtcars")[0]
        assert (tmp_path / "board" / "pins" / "mtcars" / version / "data.txt").is_file()

        local = board.pin_fetch("mtcars")
        assert local.paths[0].read_bytes() == mtcars_csv.read_bytes()

        board.pin_version_delete("mtcars", version)
        assert board.pin_exists("mtcars")
        assert board.pin_versions("mtcars") == []

        board.pin_delete("mtcars")
        assert not board.pin_exists("mtcars")

    def test_cache_info(self, tmp_path, mtcars_csv):
        """Test cache statistics and pruning through the board."""
        board = PinBoard.from_url(str(tmp_path / "board"), cache_dir=tmp_path / "cache")
        store_mtcars(board, mtcars_csv)
        board.pin_fetch("mtcars")

        info = board.cache_info()
        assert info["total_versions"] == 1
        assert info["cache_dir"] == str(tmp_path / "cache")
        assert board.cache_prune(days=30) == []


class TestFileNameSafety:
    """Test that data file names cannot clash with the metadata file or leave the cache."""

    def test_data_file_named_like_metadata(self, board, remote, tmp_path):
        """Test a data file called data.txt is refused before any upload."""
        path = tmp_path / "in" / "data.txt"
        path.parent.mkdir()
        path.write_text("plain user data\n")

        with pytest.raises(ValueError, match="reserved"):
            board.pin_store("notes", [path], {"file": ["data.txt"], "type": "file"})
        with pytest.raises(ValueError, match="reserved"):
            board.pin_upload([path], "notes")

        assert remote.calls["put_file"] == 0
        assert not board.pin_exists("notes")

    def test_remote_metadata_with_escaping_name(self, board, remote, tmp_path):
        """Test remote metadata naming a file outside the version is rejected."""
        version = "20240101T000000Z-aaaaa"
        remote.files[f"pins/evil/{version}/data.txt"] = orjson.dumps(
            {"file": ["../../../escaped.txt"], "type": "file", "api_version": 1}
        )

        with pytest.raises(CorruptMetadata):
            board.pin_fetch("evil")

        assert not list(tmp_path.rglob("escaped.txt"))

    def test_remote_metadata_listing_metadata_file(self, board, remote):
        """Test remote metadata that lists data.txt as a data file is rejected."""
        version = "20240101T000000Z-aaaaa"
        remote.files[f"pins/notes/{version}/data.txt"] = orjson.dumps(
            {"file": ["data.txt"], "type": "file", "api_version": 1}
        )

        with pytest.raises(CorruptMetadata):
            board.pin_meta("notes")


class TestCacheFailures:
    """Test that local disk failures surface from board operations."""

    def test_fetch_with_full_disk(self, board, mtcars_csv):
        """Test a full disk during fetch raises CacheDiskFullError."""
        store_mtcars(board, mtcars_csv)

        with patch(
            "pinstore.cache.index.os.replace",
            side_effect=OSError(errno.ENOSPC, "No space left on device"),
        ):
            with pytest.raises(CacheDiskFullError):
                board.pin_fetch("mtcars")
