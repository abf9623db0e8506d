"""
Workbook loading: .twb/.twbx bytes -> parsed ``<workbook>`` document.

Size, extension and emptiness are checked before anything is decoded.
Packaged workbooks are read in memory; nothing is extracted to disk.
"""

import io
import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import List, Optional, Union

from lxml import etree

from .config import Settings, get_settings
from .exceptions import FormatError, InputError, ResourceLimitError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".twb", ".twbx")


@dataclass
class LoadedWorkbook:
    """A decoded workbook document ready for the parser."""
    root: etree._Element
    workbook_name: str
    source_file: Optional[str]
    size: int
    large_file: bool = False
    member: Optional[str] = None  # .twb path inside a .twbx


class WorkbookLoader:
    """
    Loads Tableau workbooks from bytes or from disk.

    Raises InputError, FormatError or ResourceLimitError; never returns a
    partially decoded document.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def _parser(self) -> etree.XMLParser:
        return etree.XMLParser(
            resolve_entities=False,
            no_network=True,
            huge_tree=True,
            remove_blank_text=True,
        )

    def _check_limit(self, size: int, filename: str):
        if size == 0:
            raise InputError(f"File is empty. Please select a valid Tableau workbook: {filename}")
        if size > self.settings.max_file_size:
            raise ResourceLimitError(size, self.settings.max_file_size)

    def _check_size(self, size: int, filename: str) -> bool:
        self._check_limit(size, filename)
        if size > self.settings.warn_file_size:
            logger.warning(
                "Large file (%.1f MB): %s. Processing may be slow.",
                size / 1024 / 1024, filename,
            )
            return True
        return False

    def _check_extension(self, filename: str) -> str:
        suffix = Path(filename).suffix.lower()
        if suffix not in SUPPORTED_EXTENSIONS:
            raise InputError(
                f'Unsupported file type: "{suffix or "(none)"}". '
                f"Please supply a .twb (Tableau Workbook) or .twbx (Packaged Tableau Workbook) "
                f"file. Current file: {filename}"
            )
        return suffix

    def _select_member(self, names: List[str], stem: str) -> str:
        if not names:
            raise InputError("The archive is empty.")
        candidates = [n for n in names if n.lower().endswith(".twb")]
        if not candidates:
            raise FormatError(
                f"No .twb file found in the archive. Found files: {', '.join(names)}. "
                "This may not be a valid Tableau workbook file."
            )
        if len(candidates) > 1:
            for name in candidates:
                if PurePosixPath(name).stem == stem:
                    return name
            logger.warning("Archive holds %d .twb files, using %s", len(candidates), candidates[0])
        return candidates[0]

    def _read_twbx(self, data: bytes, stem: str):
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                names = [i.filename for i in archive.infolist() if not i.is_dir()]
                member = self._select_member(names, stem)
                # Compressed size says nothing about the inflated member
                large = self._check_size(archive.getinfo(member).file_size, member)
                return archive.read(member), member, large
        except zipfile.BadZipFile as e:
            raise FormatError(f"Not a valid .twbx archive: {e}") from e

    def _parse_markup(self, markup: bytes) -> etree._Element:
        try:
            text = markup.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise FormatError(f"Workbook is not valid UTF-8: {e}") from e
        if not text.strip():
            raise InputError("Workbook markup is empty.")

        try:
            root = etree.fromstring(text.encode("utf-8"), parser=self._parser())
        except etree.XMLSyntaxError as e:
            raise FormatError(f"Invalid XML in workbook: {e}") from e

        if root is None:
            raise FormatError("The file is missing required XML structure.")
        root_tag = etree.QName(root).localname
        if root_tag.lower() != "workbook":
            raise FormatError(
                f"Not a valid Tableau workbook: expected <workbook> structure, "
                f"found <{root_tag}> instead."
            )
        return root

    def load_bytes(self, data: bytes, filename: str) -> LoadedWorkbook:
        """
        Decode a workbook held in memory.

        Args:
            data: Raw file content
            filename: Original file name; its extension selects .twb or .twbx

        Returns:
            LoadedWorkbook: Parsed document plus size information
        """
        suffix = self._check_extension(filename)
        size = len(data or b"")
        large = self._check_size(size, filename)
        stem = Path(filename).stem

        member = None
        if suffix == ".twbx":
            markup, member, member_large = self._read_twbx(data, stem)
            large = large or member_large
            logger.debug("Read %s from %s", member, filename)
        else:
            markup = data

        root = self._parse_markup(markup)
        logger.info("Loaded %s (%d bytes)", filename, size)
        return LoadedWorkbook(
            root=root,
            workbook_name=stem,
            source_file=filename,
            size=size,
            large_file=large,
            member=member,
        )

    def load_file(self, path: Union[str, Path]) -> LoadedWorkbook:
        """Reject oversized files before reading them, then decode."""
        path = Path(path)
        self._check_extension(path.name)
        if not path.is_file():
            raise InputError(f"File not found: {path}")
        self._check_limit(path.stat().st_size, path.name)

        loaded = self.load_bytes(path.read_bytes(), path.name)
        loaded.source_file = str(path)
        return loaded
