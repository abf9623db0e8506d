"""
Tableau Workbook Lineage Graph

Turns .twb/.twbx workbooks into a canonical dependency graph of fields,
calculated fields, parameters, worksheets and dashboards.
"""

from .exceptions import FormatError, InputError, ResourceLimitError, WorkbookLoadError
from .session import WorkbookSession

__version__ = "0.1.0"
__all__ = [
    "WorkbookSession",
    "WorkbookLoadError",
    "InputError",
    "FormatError",
    "ResourceLimitError",
]
