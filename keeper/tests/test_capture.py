"""
Tests for CaptureService
"""

import hashlib

import pytest
from unittest.mock import Mock


@pytest.fixture
def store():
    from keeper.common.store import KnowledgeStore
    with KnowledgeStore(":memory:") as s:
        yield s


@pytest.fixture
def service(store):
    from keeper.scribe.capture import CaptureService
    return CaptureService(store)


def _upload(tmp_path, original_name, data=b"Sarah replaced the thermal sensor."):
    from keeper.scribe.capture import UploadedFile

    path = tmp_path / f"stored-{original_name}"
    path.write_bytes(data)
    return UploadedFile(path=path, original_name=original_name)


class TestCapture:
    def test_capture_text_file(self, service, store, tmp_path):
        data = b"Sarah replaced the thermal sensor on the cooling loop."
        upload = _upload(tmp_path, "cooling.txt", data)

        result = service.capture("Sarah Connor", "Plant Engineer", "12", [upload])

        assert result.files_processed == 1
        assert result.employee.name == "Sarah Connor"
        assert result.employee.years == 12
        assert result.employee.file_count == 1

        stored = store.get_files(result.employee.id)
        assert len(stored) == 1
        assert stored[0].original_name == "cooling.txt"
        assert stored[0].filename == upload.path.name
        assert stored[0].file_type == ".txt"
        assert stored[0].file_size == len(data)
        assert stored[0].content_hash == hashlib.sha256(data).hexdigest()

        hits = store.search_knowledge(result.employee.id, "thermal")
        assert [h.content for h in hits] == [data.decode()]
        assert hits[0].metadata["original_name"] == "cooling.txt"
        assert hits[0].metadata["file_type"] == ".txt"
        assert "extracted_at" in hits[0].metadata

    def test_to_dict(self, service, tmp_path):
        result = service.capture("Sarah", "Engineer", None, [_upload(tmp_path, "a.txt")])

        data = result.to_dict()

        assert data["success"] is True
        assert data["filesProcessed"] == 1
        assert data["employee"]["years"] == 0
        assert data["files"][0]["name"] == "a.txt"
        assert data["files"][0]["type"] == ".txt"

    def test_placeholder_for_pst(self, service, store, tmp_path):
        from keeper.scribe.extractors import PST_PLACEHOLDER

        result = service.capture("Sarah", "Engineer", 3, [_upload(tmp_path, "mail.pst", b"\x00")])

        hits = store.search_knowledge(result.employee.id, "PST file")
        assert [h.content for h in hits] == [PST_PLACEHOLDER]

    def test_extraction_failure_still_stores_file(self, store, tmp_path):
        from keeper.scribe.capture import CaptureService
        from keeper.scribe.extractors import ERROR_PLACEHOLDER

        service = CaptureService(store)
        result = service.capture(
            "Sarah", "Engineer", 3, [_upload(tmp_path, "broken.pdf", b"not a pdf")]
        )

        assert result.employee.file_count == 1
        hits = store.search_knowledge(result.employee.id, "extracting")
        assert [h.content for h in hits] == [ERROR_PLACEHOLDER]

    def test_uses_injected_extractor(self, store, tmp_path):
        from keeper.scribe.capture import CaptureService

        extractor = Mock()
        extractor.extract_text.return_value = "injected text"
        upload = _upload(tmp_path, "notes.txt")

        result = CaptureService(store, extractor=extractor).capture("Sarah", "Engineer", 1, [upload])

        extractor.extract_text.assert_called_once_with(upload.path, ".txt")
        assert store.search_knowledge(result.employee.id, "injected")


class TestValidation:
    @pytest.mark.parametrize("name,title", [
        ("", "Engineer"),
        ("Sarah", ""),
        (None, "Engineer"),
        ("   ", "Engineer"),
        ("Sarah", "\t "),
    ])
    def test_name_and_title_required(self, service, store, tmp_path, name, title):
        from keeper.scribe.capture import CaptureInputError

        with pytest.raises(CaptureInputError, match="required"):
            service.capture(name, title, 1, [_upload(tmp_path, "a.txt")])
        assert store.get_employees() == []

    def test_files_required(self, service):
        from keeper.scribe.capture import CaptureInputError

        with pytest.raises(CaptureInputError, match="At least one file"):
            service.capture("Sarah", "Engineer", 1, [])

    def test_too_many_files(self, store, tmp_path):
        from keeper.common.config import UploadConfig
        from keeper.scribe.capture import CaptureInputError, CaptureService

        service = CaptureService(store, config=UploadConfig(max_files=2))
        uploads = [_upload(tmp_path, f"{i}.txt") for i in range(3)]

        with pytest.raises(CaptureInputError, match="Too many files"):
            service.capture("Sarah", "Engineer", 1, uploads)

    def test_type_not_allowed(self, service, store, tmp_path):
        from keeper.scribe.capture import CaptureInputError

        with pytest.raises(CaptureInputError, match="not supported"):
            service.capture("Sarah", "Engineer", 1, [_upload(tmp_path, "run.exe")])
        assert store.get_employees() == []

    def test_size_limit(self, store, tmp_path):
        from keeper.common.config import UploadConfig
        from keeper.scribe.capture import CaptureInputError, CaptureService

        service = CaptureService(store, config=UploadConfig(max_file_size=10))

        with pytest.raises(CaptureInputError, match="exceeds"):
            service.capture("Sarah", "Engineer", 1, [_upload(tmp_path, "big.txt", b"x" * 11)])


@pytest.mark.parametrize("value,expected", [
    ("12", 12),
    (7, 7),
    ("", 0),
    (None, 0),
    ("many", 0),
    ("-3", 0),
])
def test_parse_years(value, expected):
    from keeper.scribe.capture import parse_years

    assert parse_years(value) == expected


def test_sha256_file(tmp_path):
    from keeper.scribe.capture import sha256_file

    path = tmp_path / "data.bin"
    path.write_bytes(b"knowledge")

    assert sha256_file(path) == hashlib.sha256(b"knowledge").hexdigest()
