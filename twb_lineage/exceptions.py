"""Errors raised while loading a workbook.

Document-level problems abort the whole load. Problems with individual
nodes or edges are never raised; see ``utils.validation.Diagnostics``.
"""


class WorkbookLoadError(Exception):
    """Base class for errors that abort a workbook load."""


class InputError(WorkbookLoadError):
    """The supplied file is unusable (empty, wrong extension, empty archive)."""


class FormatError(WorkbookLoadError):
    """The file is not a readable Tableau workbook."""


class ResourceLimitError(WorkbookLoadError):
    """The file exceeds the configured maximum size."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(
            f"File is too large ({size / 1024 / 1024:.1f} MB). "
            f"Maximum size is {limit / 1024 / 1024:.0f} MB."
        )
