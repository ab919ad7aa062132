"""Unit tests for the ingest, listing and retrieval services."""
import io
import os
import re
from concurrent.futures import ThreadPoolExecutor

import pytest

from flowshare.errors import (
    FileNotFoundInRoomError,
    RoomValidationError,
    StorageIOError,
    UploadTooLargeError,
)
from flowshare.files.service import TEMP_PREFIX, IngestService, RoomFiles

STORED_REPORT = re.compile(r"^\d+-report\.pdf$")


class TestIngestService:
    """Tests for IngestService.ingest."""

    def test_stores_file_under_timestamped_name(self, room_files, storage_root):
        stored = room_files.ingest.ingest("ABC123", "report.pdf", io.BytesIO(b"%PDF-1.4"))

        assert STORED_REPORT.match(stored.stored_name)
        assert stored.room_id == "ABC123"
        assert stored.size_bytes == 8
        assert (storage_root / "ABC123" / stored.stored_name).read_bytes() == b"%PDF-1.4"

    def test_uses_clock_for_timestamp(self, storage_root):
        files = RoomFiles.build(storage_root, clock=lambda: 1700000000123)
        stored = files.ingest.ingest("room", "a.txt", io.BytesIO(b"a"))
        assert stored.stored_name == "1700000000123-a.txt"

    def test_sanitizes_room_and_filename(self, room_files, storage_root):
        stored = room_files.ingest.ingest("../ab-c", "../../etc/passwd", io.BytesIO(b"x"))

        assert stored.room_id == "abc"
        assert "/" not in stored.stored_name
        assert ".." not in stored.stored_name
        assert (storage_root / "abc" / stored.stored_name).is_file()

    @pytest.mark.parametrize("room_id", [None, "", "   "])
    def test_missing_room_id_is_validation_error(self, room_files, storage_root, room_id):
        with pytest.raises(RoomValidationError, match="Room ID required"):
            room_files.ingest.ingest(room_id, "a.txt", io.BytesIO(b"a"))
        assert list(storage_root.iterdir()) == []

    def test_missing_stream_is_validation_error(self, room_files):
        with pytest.raises(RoomValidationError, match="No file uploaded"):
            room_files.ingest.ingest("room", "a.txt", None)

    def test_oversized_upload_rejected_without_leftovers(self, room_files, storage_root):
        with pytest.raises(UploadTooLargeError) as exc_info:
            room_files.ingest.ingest("room", "big.bin", io.BytesIO(b"x" * 1025))

        assert exc_info.value.status_code == 413
        assert list((storage_root / "room").iterdir()) == []

    def test_upload_at_limit_accepted(self, room_files):
        stored = room_files.ingest.ingest("room", "edge.bin", io.BytesIO(b"x" * 1024))
        assert stored.size_bytes == 1024

    def test_same_millisecond_collision_does_not_overwrite(self, storage_root):
        files = RoomFiles.build(storage_root, clock=lambda: 1000)

        first = files.ingest.ingest("room", "a.txt", io.BytesIO(b"first"))
        second = files.ingest.ingest("room", "a.txt", io.BytesIO(b"second"))

        assert first.stored_name == "1000-a.txt"
        assert second.stored_name == "1001-a.txt"
        assert (storage_root / "room" / "1000-a.txt").read_bytes() == b"first"
        assert (storage_root / "room" / "1001-a.txt").read_bytes() == b"second"

    def test_no_temporary_files_left_behind(self, room_files, storage_root):
        room_files.ingest.ingest("room", "a.txt", io.BytesIO(b"a"))
        names = os.listdir(storage_root / "room")
        assert not [n for n in names if n.startswith(TEMP_PREFIX)]

    def test_stream_failure_cleans_up(self, room_files, storage_root):
        class BrokenStream:
            def read(self, size=-1):
                raise OSError("connection reset")

        with pytest.raises(StorageIOError):
            room_files.ingest.ingest("room", "a.txt", BrokenStream())
        assert list((storage_root / "room").iterdir()) == []

    def test_concurrent_ingests_into_new_room(self, room_files):
        payloads = {"one.txt": b"1" * 100, "two.txt": b"2" * 100}

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(
                pool.map(
                    lambda item: room_files.ingest.ingest("newroom", item[0], io.BytesIO(item[1])),
                    payloads.items(),
                )
            )

        listed = room_files.listing.list_files("newroom")
        assert sorted(listed) == sorted(r.stored_name for r in results)
        assert {name.split("-", 1)[1] for name in listed} == set(payloads)


class TestListingService:
    """Tests for ListingService.list_files."""

    def test_nonexistent_room_lists_empty(self, room_files, storage_root):
        assert room_files.listing.list_files("nosuchroom") == []
        assert not (storage_root / "nosuchroom").exists()

    def test_degenerate_room_lists_empty(self, room_files):
        assert room_files.listing.list_files("!!!") == []

    def test_upload_visible_to_next_listing(self, room_files):
        stored = room_files.ingest.ingest("ABC123", "report.pdf", io.BytesIO(b"data"))
        listed = room_files.listing.list_files("ABC123")
        assert listed == [stored.stored_name]

    def test_sorted_chronologically(self, room_files, storage_root):
        room = storage_root / "room"
        room.mkdir()
        for name in ["900-b.txt", "10000-a.txt", "1000-c.txt"]:
            (room / name).write_bytes(b"")

        assert room_files.listing.list_files("room") == ["900-b.txt", "1000-c.txt", "10000-a.txt"]

    def test_skips_hidden_and_directories(self, room_files, storage_root):
        room = storage_root / "room"
        room.mkdir()
        (room / "1-a.txt").write_bytes(b"a")
        (room / f"{TEMP_PREFIX}abc").write_bytes(b"partial")
        (room / "subdir").mkdir()

        assert room_files.listing.list_files("room") == ["1-a.txt"]

    def test_rooms_are_isolated(self, room_files):
        room_files.ingest.ingest("roomA", "a.txt", io.BytesIO(b"a"))
        assert room_files.listing.list_files("roomB") == []


class TestRetrievalService:
    """Tests for RetrievalService.retrieve."""

    def test_round_trip(self, room_files):
        content = b"%PDF-1.7 binary \x00\xff payload"
        room_files.ingest.ingest("ABC123", "report.pdf", io.BytesIO(content))

        listed = room_files.listing.list_files("ABC123")
        assert len(listed) == 1
        assert STORED_REPORT.match(listed[0])

        found = room_files.retrieval.retrieve("ABC123", listed[0])
        assert found.path.read_bytes() == content
        assert found.size_bytes == len(content)
        assert found.media_type == "application/pdf"

    def test_room_id_sanitized_on_lookup(self, room_files):
        stored = room_files.ingest.ingest("ABC123", "a.txt", io.BytesIO(b"a"))
        found = room_files.retrieval.retrieve("ABC-123", stored.stored_name)
        assert found.room_id == "ABC123"

    def test_unknown_name_not_found(self, room_files):
        room_files.ingest.ingest("room", "a.txt", io.BytesIO(b"a"))
        with pytest.raises(FileNotFoundInRoomError) as exc_info:
            room_files.retrieval.retrieve("room", "123-missing.txt")
        assert exc_info.value.logical_path == "room/123-missing.txt"

    def test_unknown_room_not_found(self, room_files):
        with pytest.raises(FileNotFoundInRoomError):
            room_files.retrieval.retrieve("ghost", "1-a.txt")

    def test_name_is_not_sanitized(self, room_files):
        stored = room_files.ingest.ingest("room", "my file.txt", io.BytesIO(b"a"))
        assert stored.stored_name.endswith("-my_file.txt")
        with pytest.raises(FileNotFoundInRoomError):
            room_files.retrieval.retrieve("room", stored.stored_name.replace("_", " "))

    @pytest.mark.parametrize("name", ["..", ".", "../other/1-a.txt", "sub", f"{TEMP_PREFIX}x"])
    def test_escaping_or_hidden_names_not_found(self, room_files, storage_root, name):
        room_files.ingest.ingest("other", "a.txt", io.BytesIO(b"a"))
        room = storage_root / "room"
        room.mkdir()
        (room / "sub").mkdir()
        (room / f"{TEMP_PREFIX}x").write_bytes(b"partial")

        with pytest.raises(FileNotFoundInRoomError):
            room_files.retrieval.retrieve("room", name)

    def test_other_rooms_files_unreachable(self, room_files):
        stored = room_files.ingest.ingest("roomA", "a.txt", io.BytesIO(b"a"))
        room_files.ingest.ingest("roomB", "b.txt", io.BytesIO(b"b"))
        with pytest.raises(FileNotFoundInRoomError):
            room_files.retrieval.retrieve("roomB", stored.stored_name)


def test_ingest_service_defaults(tmp_path):
    from flowshare.rooms.resolver import NamespaceResolver

    service = IngestService(NamespaceResolver(tmp_path))
    assert service.max_upload_bytes == 100 * 1024 * 1024
