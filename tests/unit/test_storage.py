"""
Unit Tests - File Storage
=========================
"""

import pytest

from exceptions import StorageError
from services.storage import delete_files, generated_path, safe_filename, save_file, upload_path


class TestPaths:

    @pytest.mark.unit
    @pytest.mark.parametrize("filename, expected", [
        ("safe.docx", "safe.docx"),
        ("../../etc/passwd", "passwd"),
        ("My Contract (final).pdf", "My_Contract_final_.pdf"),
        ("", "document"),
        (None, "document"),
        ("...", "document"),
    ])
    def test_safe_filename(self, filename, expected):
        assert safe_filename(filename) == expected

    @pytest.mark.unit
    def test_upload_path(self, tmp_path):
        path = upload_path("abc", "../nda.docx", str(tmp_path))
        assert path == tmp_path.resolve() / "abc_nda.docx"

    @pytest.mark.unit
    def test_generated_path(self, tmp_path):
        path = generated_path("abc", str(tmp_path))

        assert path.parent == tmp_path.resolve() / "generated"
        assert path.name.startswith("abc_")
        assert path.suffix == ".docx"


class TestFiles:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_save_and_delete(self, tmp_path):
        path = await save_file(tmp_path / "nested" / "a.docx", b"content")

        assert path.read_bytes() == b"content"
        assert delete_files([str(path), None, str(tmp_path / "missing")]) == 1
        assert not path.exists()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_save_failure(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")

        with pytest.raises(StorageError):
            await save_file(blocker / "child.docx", b"content")
