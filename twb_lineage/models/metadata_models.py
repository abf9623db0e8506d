"""
Metadata models for Tableau workbook parsing.

The parser fills these from the workbook XML; the graph builder reads them.
"""

import re
from typing import Optional, List, Dict, Any, Tuple
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime

LOD_PATTERN = re.compile(r"\{\s*(FIXED|INCLUDE|EXCLUDE)", re.IGNORECASE)
TABLE_CALC_PATTERN = re.compile(r"\b(WINDOW_|RUNNING_|LOOKUP|INDEX|RANK)", re.IGNORECASE)


def is_lod_formula(formula: Optional[str]) -> bool:
    """Heuristic: formula opens a {FIXED|INCLUDE|EXCLUDE ...} scope."""
    return bool(formula) and LOD_PATTERN.search(formula) is not None


def is_table_calc_formula(formula: Optional[str]) -> bool:
    """Heuristic: formula calls a WINDOW_/RUNNING_/LOOKUP/INDEX/RANK function."""
    return bool(formula) and TABLE_CALC_PATTERN.search(formula) is not None


class ReferenceSet(BaseModel):
    """Field and parameter tokens found in a formula."""
    fields: List[str] = Field(default_factory=list)
    parameters: List[str] = Field(default_factory=list)


class CalculationMetadata(BaseModel):
    """Formula attached to a calculated field."""
    model_config = ConfigDict(populate_by_name=True)

    formula: str = ""
    calculation_class: str = Field(default="", alias="class")


class ConnectionMetadata(BaseModel):
    """A single connection descriptor of a data source."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    caption: str = ""
    connection_class: str = Field(default="", alias="class")
    kind: str = ""  # human readable, e.g. "PostgreSQL"
    type: str = ""
    server: str = ""
    dbname: str = ""
    warehouse: str = ""


class FieldMetadata(BaseModel):
    """A datasource column, calculated or not."""
    id: str
    raw_id: str = ""  # empty when the markup carries no name
    caption: str = ""
    name: str
    datatype: str = ""
    role: str = ""
    default_aggregation: str = ""
    is_calculated: bool = False
    datasource_id: str = ""

    # Calculated fields only
    calculation: Optional[CalculationMetadata] = None
    references: Optional[ReferenceSet] = None

    @property
    def display_name(self) -> str:
        return self.caption or self.name

    @property
    def formula(self) -> str:
        return self.calculation.formula if self.calculation else ""


class DataSourceMetadata(BaseModel):
    """A top-level workbook data source."""
    id: str
    raw_id: str = ""
    caption: str = ""
    name: str
    connections: List[ConnectionMetadata] = Field(default_factory=list)
    fields: List[FieldMetadata] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.caption or self.name or self.raw_id or self.id

    @property
    def calculated_fields(self) -> List[FieldMetadata]:
        return [f for f in self.fields if f.is_calculated]


class ParameterMetadata(BaseModel):
    """A workbook parameter."""
    id: str
    raw_id: str = ""
    caption: str = ""
    name: str
    datatype: str = ""
    current_value: str = ""

    @property
    def display_name(self) -> str:
        return self.caption or self.name


class SheetMetadata(BaseModel):
    """A worksheet and the field captions it uses."""
    id: str
    raw_id: str = ""
    caption: str = ""
    name: str
    fields_used: List[str] = Field(default_factory=list)


class DashboardMetadata(BaseModel):
    """A dashboard and the worksheet captions placed on it."""
    id: str
    raw_id: str = ""
    caption: str = ""
    name: str
    worksheets: List[str] = Field(default_factory=list)


class LineageMetadata(BaseModel):
    """Lineage pairs computed at parse time: (referenced name, consumer name)."""
    field_to_field: List[Tuple[str, str]] = Field(default_factory=list)
    field_to_sheet: List[Tuple[str, str]] = Field(default_factory=list)


class WorkbookMetadata(BaseModel):
    """Complete metadata for a Tableau workbook."""
    # Basic info
    name: str
    version: Optional[str] = None
    build: Optional[str] = None

    # Source
    source_file: Optional[str] = None
    extraction_timestamp: Optional[datetime] = None

    datasources: List[DataSourceMetadata] = Field(default_factory=list)
    parameters: List[ParameterMetadata] = Field(default_factory=list)
    worksheets: List[SheetMetadata] = Field(default_factory=list)
    dashboards: List[DashboardMetadata] = Field(default_factory=list)
    lineage: LineageMetadata = Field(default_factory=LineageMetadata)

    # Summary statistics
    total_datasources: int = 0
    total_fields: int = 0
    total_regular_fields: int = 0
    total_calculated_fields: int = 0
    total_lod_calculations: int = 0
    total_table_calculations: int = 0
    total_parameters: int = 0
    total_worksheets: int = 0
    total_dashboards: int = 0
    total_dependencies: int = 0

    def iter_fields(self):
        """Yield (datasource, field) for every field in every datasource."""
        for ds in self.datasources:
            for field in ds.fields:
                yield ds, field

    def compute_statistics(self):
        """Compute summary statistics."""
        self.total_datasources = len(self.datasources)
        self.total_parameters = len(self.parameters)
        self.total_worksheets = len(self.worksheets)
        self.total_dashboards = len(self.dashboards)

        total_fields = 0
        total_calc = 0
        total_lod = 0
        total_table_calc = 0

        for _, field in self.iter_fields():
            total_fields += 1
            if field.is_calculated:
                total_calc += 1
                if is_lod_formula(field.formula):
                    total_lod += 1
                if is_table_calc_formula(field.formula):
                    total_table_calc += 1

        self.total_fields = total_fields
        self.total_calculated_fields = total_calc
        self.total_regular_fields = total_fields - total_calc
        self.total_lod_calculations = total_lod
        self.total_table_calculations = total_table_calc
        self.total_dependencies = (
            len(self.lineage.field_to_field) + len(self.lineage.field_to_sheet)
        )

    def to_json(self, indent: int = 2) -> str:
        """Export to JSON."""
        return self.model_dump_json(indent=indent, by_alias=True)

    def to_dict(self) -> Dict[str, Any]:
        """Export to dictionary."""
        return self.model_dump(by_alias=True)
