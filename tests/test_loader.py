"""Tests for workbook loading."""

import io
import zipfile

import pytest

from twb_lineage.config import Settings
from twb_lineage.exceptions import FormatError, InputError, ResourceLimitError
from twb_lineage.loader import WorkbookLoader

from conftest import SAMPLE_TWB


def make_twbx(members, compression=zipfile.ZIP_STORED):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression) as archive:
        for name, content in members.items():
            archive.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def loader():
    return WorkbookLoader(Settings())


class TestLoadBytes:

    def test_twb(self, loader):
        loaded = loader.load_bytes(SAMPLE_TWB.encode("utf-8"), "Superstore.twb")
        assert loaded.root.tag == "workbook"
        assert loaded.workbook_name == "Superstore"
        assert loaded.size == len(SAMPLE_TWB.encode("utf-8"))
        assert not loaded.large_file

    def test_twbx_member_at_any_path(self, loader):
        data = make_twbx({"Data/extract.hyper": b"x", "nested/Superstore.twb": SAMPLE_TWB})
        loaded = loader.load_bytes(data, "Superstore.twbx")
        assert loaded.member == "nested/Superstore.twb"
        assert loaded.root.tag == "workbook"

    def test_twbx_prefers_member_matching_archive_name(self, loader):
        data = make_twbx({
            "Other.twb": "<workbook version='1' />",
            "Sales.twb": SAMPLE_TWB,
        })
        assert loader.load_bytes(data, "Sales.twbx").member == "Sales.twb"

    def test_wrong_extension(self, loader):
        with pytest.raises(InputError):
            loader.load_bytes(b"<workbook />", "workbook.xml")

    def test_empty(self, loader):
        with pytest.raises(InputError):
            loader.load_bytes(b"", "empty.twb")

    def test_blank_markup(self, loader):
        with pytest.raises(InputError):
            loader.load_bytes(b"   \n", "blank.twb")

    def test_malformed_xml(self, loader):
        with pytest.raises(FormatError):
            loader.load_bytes(b"<workbook><datasources></workbook>", "broken.twb")

    def test_wrong_root(self, loader):
        with pytest.raises(FormatError, match="found <html>"):
            loader.load_bytes(b"<html />", "page.twb")

    def test_not_a_zip(self, loader):
        with pytest.raises(FormatError):
            loader.load_bytes(b"plain text", "fake.twbx")

    def test_empty_archive(self, loader):
        with pytest.raises(InputError):
            loader.load_bytes(make_twbx({}), "empty.twbx")

    def test_archive_without_workbook(self, loader):
        with pytest.raises(FormatError, match="readme.txt"):
            loader.load_bytes(make_twbx({"readme.txt": "hi"}), "docs.twbx")

    def test_entities_not_resolved(self, loader):
        markup = (
            b"<?xml version='1.0'?>"
            b"<!DOCTYPE workbook [<!ENTITY secret SYSTEM 'file:///etc/passwd'>]>"
            b"<workbook><note>&secret;</note></workbook>"
        )
        loaded = loader.load_bytes(markup, "evil.twb")
        assert "root:" not in (loaded.root.findtext("note") or "")


class TestSizePolicy:

    def test_too_large_rejected(self):
        loader = WorkbookLoader(Settings(max_file_size=100, warn_file_size=50))
        with pytest.raises(ResourceLimitError) as exc_info:
            loader.load_bytes(b"x" * 101, "big.twb")
        assert exc_info.value.limit == 100

    def test_large_flagged(self):
        loader = WorkbookLoader(Settings(max_file_size=10_000, warn_file_size=10))
        loaded = loader.load_bytes(b"<workbook version='1' />", "big.twb")
        assert loaded.large_file

    def test_inflated_member_over_limit_rejected(self):
        markup = "<workbook>" + " " * 5000 + "</workbook>"
        data = make_twbx({"Bomb.twb": markup}, zipfile.ZIP_DEFLATED)
        assert len(data) < 1000
        loader = WorkbookLoader(Settings(max_file_size=1000, warn_file_size=500))
        with pytest.raises(ResourceLimitError) as exc_info:
            loader.load_bytes(data, "Bomb.twbx")
        assert exc_info.value.size == len(markup)

    def test_inflated_member_over_warning_flagged(self):
        markup = "<workbook>" + " " * 2000 + "</workbook>"
        data = make_twbx({"Wide.twb": markup}, zipfile.ZIP_DEFLATED)
        loader = WorkbookLoader(Settings(max_file_size=10_000, warn_file_size=1000))
        assert len(data) < 1000
        assert loader.load_bytes(data, "Wide.twbx").large_file

    def test_large_file_warned_once(self, tmp_path, caplog):
        path = tmp_path / "big.twb"
        path.write_bytes(b"<workbook version='1' />")
        loader = WorkbookLoader(Settings(max_file_size=10_000, warn_file_size=10))
        assert loader.load_file(path).large_file
        assert caplog.text.count("Large file") == 1


class TestLoadFile:

    def test_load_file(self, loader, twb_file):
        loaded = loader.load_file(twb_file)
        assert loaded.source_file == str(twb_file)
        assert loaded.workbook_name == "Superstore"

    def test_missing_file(self, loader, tmp_path):
        with pytest.raises(InputError):
            loader.load_file(tmp_path / "nope.twb")

    def test_oversize_checked_before_reading(self, tmp_path):
        path = tmp_path / "big.twbx"
        path.write_bytes(b"x" * 200)
        loader = WorkbookLoader(Settings(max_file_size=100, warn_file_size=50))
        with pytest.raises(ResourceLimitError):
            loader.load_file(path)
