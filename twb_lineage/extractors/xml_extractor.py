"""
XML-based metadata extractor for Tableau workbooks.

Walks an already parsed ``<workbook>`` document and produces the normalized
metadata model: datasources with their fields, parameters, worksheets,
dashboards and the parse-time lineage pairs. Missing names never abort the
walk; ordinal labels such as "Field 3" are used instead.
"""

import logging
from typing import Optional, List, Dict, Iterable, Tuple, Union
from lxml import etree
from datetime import datetime

from ..exceptions import FormatError
from ..models.metadata_models import (
    CalculationMetadata,
    ConnectionMetadata,
    FieldMetadata,
    DataSourceMetadata,
    ParameterMetadata,
    SheetMetadata,
    DashboardMetadata,
    LineageMetadata,
    WorkbookMetadata,
)
from .references import extract_calculation_references

logger = logging.getLogger(__name__)

Document = Union[etree._Element, etree._ElementTree]


def dedupe_pairs(pairs: Iterable[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """Drop repeated (from, to) pairs, keeping first occurrences in order."""
    seen = set()
    unique = []
    for pair in pairs:
        key = (pair[0], pair[1])
        if key in seen:
            continue
        seen.add(key)
        unique.append(key)
    return unique


def _ordered_union(*groups: Iterable[str]) -> List[str]:
    merged: Dict[str, None] = {}
    for group in groups:
        for value in group:
            if value:
                merged[value] = None
    return list(merged)


class XMLMetadataExtractor:
    """
    Extracts the lineage metadata model from a parsed Tableau workbook.

    The document must already be well-formed XML; the extractor only checks
    that its root is ``<workbook>``.
    """

    PARAMETERS_DATASOURCE = "Parameters"

    # Zone types that never hold a worksheet
    NON_SHEET_ZONE_TYPES = {
        "text", "web", "image", "bitmap", "title", "empty", "blank",
        "paramctrl", "legend", "color", "size", "shape", "map",
        "horizontal", "vertical", "layout-basic", "layout-flow",
    }

    CONNECTION_TYPE_MAP = {
        "sqlserver": "SQL Server",
        "postgres": "PostgreSQL",
        "mysql": "MySQL",
        "oracle": "Oracle",
        "snowflake": "Snowflake",
        "bigquery": "BigQuery",
        "redshift": "Redshift",
        "databricks": "Databricks",
        "synapse": "Azure Synapse",
        "excel": "Excel",
        "excel-direct": "Excel",
        "textscan": "CSV/Text",
        "hyper": "Tableau Extract",
        "federated": "Federated",
        "googlesheets": "Google Sheets",
        "salesforce": "Salesforce",
    }

    def __init__(
        self,
        document: Document,
        workbook_name: str = "Workbook",
        source_file: Optional[str] = None,
    ):
        """
        Initialize the extractor with a parsed workbook document.

        Args:
            document: lxml element or element tree of the .twb markup
            workbook_name: Name recorded on the resulting metadata
            source_file: Original file path, if any
        """
        if isinstance(document, etree._ElementTree):
            document = document.getroot()
        self.root: Optional[etree._Element] = document
        self.workbook_name = workbook_name
        self.source_file = source_file

    def extract(self) -> WorkbookMetadata:
        """
        Extract all metadata from the workbook.

        Returns:
            WorkbookMetadata: Complete metadata object

        Raises:
            FormatError: the document has no ``<workbook>`` root
        """
        self._check_root()

        datasources = self._parse_datasources()
        parameters = self._parse_parameters()
        worksheets = self._parse_worksheets()
        dashboards = self._parse_dashboards()
        lineage = self._build_lineage(datasources, worksheets)

        metadata = WorkbookMetadata(
            name=self.workbook_name,
            version=self.root.get("version"),
            build=self.root.get("source-build"),
            source_file=self.source_file,
            extraction_timestamp=datetime.now(),
            datasources=datasources,
            parameters=parameters,
            worksheets=worksheets,
            dashboards=dashboards,
            lineage=lineage,
        )
        metadata.compute_statistics()

        logger.info(
            "Parsed workbook '%s': %d datasources, %d fields, %d parameters, "
            "%d worksheets, %d dashboards",
            metadata.name, metadata.total_datasources, metadata.total_fields,
            metadata.total_parameters, metadata.total_worksheets, metadata.total_dashboards,
        )
        return metadata

    def _check_root(self) -> None:
        if self.root is None or not isinstance(self.root.tag, str):
            raise FormatError(
                "The file is missing required XML structure. "
                "This may not be a valid Tableau workbook file."
            )
        root_tag = etree.QName(self.root).localname.lower()
        if root_tag != "workbook":
            raise FormatError(
                f"Not a valid Tableau workbook: expected <workbook> structure, "
                f"found <{root_tag}> instead."
            )

    def _infer_connection_type(self, class_name: str) -> str:
        """Infer connection type from class name."""
        return self.CONNECTION_TYPE_MAP.get(class_name.lower(), class_name)

    def _top_level_datasources(self) -> List[etree._Element]:
        container = self.root.find("datasources")
        if container is None:
            return []
        return container.findall("datasource")

    def _parse_datasources(self) -> List[DataSourceMetadata]:
        """Parse all data sources from the workbook."""
        datasources = []

        index = 0
        for ds_elem in self._top_level_datasources():
            if ds_elem.get("name", "") == self.PARAMETERS_DATASOURCE:
                continue  # Handle parameters separately
            index += 1
            datasources.append(self._parse_single_datasource(ds_elem, index))

        return datasources

    def _parse_single_datasource(self, ds_elem: etree._Element, index: int) -> DataSourceMetadata:
        """Parse a single data source element."""
        raw_id = ds_elem.get("name") or ""
        caption = ds_elem.get("caption") or ""
        name = caption or raw_id or f"Datasource {index}"

        connections = []
        for conn_elem in ds_elem.iter("connection"):
            connection_class = conn_elem.get("class") or ""
            connections.append(ConnectionMetadata(
                id=conn_elem.get("name") or "",
                caption=conn_elem.get("caption") or "",
                connection_class=connection_class,
                kind=self._infer_connection_type(connection_class) if connection_class else "",
                type=conn_elem.get("type") or "",
                server=conn_elem.get("server") or "",
                dbname=conn_elem.get("dbname") or "",
                warehouse=conn_elem.get("warehouse") or "",
            ))

        datasource = DataSourceMetadata(
            id=raw_id or name,
            raw_id=raw_id,
            caption=caption,
            name=name,
            connections=connections,
        )
        datasource.fields = self._parse_fields(ds_elem, datasource.raw_id or datasource.id)
        return datasource

    def _parse_fields(self, ds_elem: etree._Element, datasource_id: str) -> List[FieldMetadata]:
        """Parse column definitions, calculated or not, from a data source."""
        fields = []

        # <connection>/<relation> columns describe the physical table, not fields
        columns = [
            c for c in ds_elem.iter("column")
            if next(c.iterancestors("connection"), None) is None
        ]
        for position, col_elem in enumerate(columns, start=1):
            raw_id = col_elem.get("name") or ""
            caption = col_elem.get("caption") or ""
            name = caption or raw_id or f"Field {position}"

            field = FieldMetadata(
                id=raw_id or name,
                raw_id=raw_id,
                caption=caption,
                name=name,
                datatype=col_elem.get("datatype") or "",
                role=col_elem.get("role") or "",
                default_aggregation=(
                    col_elem.get("default-aggregation") or col_elem.get("aggregation") or ""
                ),
                datasource_id=datasource_id,
            )

            calc_elem = col_elem.find("calculation")
            if calc_elem is not None:
                formula = calc_elem.get("formula") or (calc_elem.text or "")
                field.is_calculated = True
                field.calculation = CalculationMetadata(
                    formula=formula,
                    calculation_class=calc_elem.get("class") or "",
                )
                field.references = extract_calculation_references(formula)

            fields.append(field)

        return fields

    def _parse_parameters(self) -> List[ParameterMetadata]:
        """Parse parameters from the Parameters datasource and <parameter> elements."""
        elements = []
        for ds_elem in self._top_level_datasources():
            if ds_elem.get("name", "") == self.PARAMETERS_DATASOURCE:
                elements.extend(ds_elem.iter("column"))
        elements.extend(self.root.iter("parameter"))

        parameters = []
        for position, param_elem in enumerate(elements, start=1):
            raw_id = param_elem.get("name") or ""
            caption = param_elem.get("caption") or ""
            name = caption or raw_id or f"Parameter {position}"

            parameters.append(ParameterMetadata(
                id=raw_id or name,
                raw_id=raw_id,
                caption=caption,
                name=name,
                datatype=param_elem.get("datatype") or "",
                current_value=self._parameter_value(param_elem),
            ))

        return parameters

    def _parameter_value(self, param_elem: etree._Element) -> str:
        value = param_elem.get("value")
        if value:
            return value
        calc_elem = param_elem.find("calculation")
        if calc_elem is not None and calc_elem.get("formula"):
            return calc_elem.get("formula").strip("'\"")
        current = param_elem.find("current-value")
        if current is not None and current.text:
            return current.text.strip()
        return ""

    def _parse_worksheets(self) -> List[SheetMetadata]:
        """Parse all worksheets from the workbook."""
        sheets = []

        for position, ws_elem in enumerate(self.root.iterfind(".//worksheets/worksheet"), start=1):
            raw_id = ws_elem.get("name") or ""
            caption = ws_elem.get("caption") or ""
            name = caption or raw_id or f"Worksheet {position}"

            # Tableau records sheet columns twice: once in the dependency block
            # and once inline; both lists are merged.
            dependency_refs = [
                self._column_ref(col)
                for col in ws_elem.iterfind(".//datasource-dependencies//column")
            ]
            inline_refs = [self._column_ref(col) for col in ws_elem.iter("column")]

            sheets.append(SheetMetadata(
                id=raw_id or name,
                raw_id=raw_id,
                caption=caption,
                name=name,
                fields_used=_ordered_union(dependency_refs, inline_refs),
            ))

        return sheets

    def _column_ref(self, col_elem: etree._Element) -> str:
        return col_elem.get("caption") or col_elem.get("name") or ""

    def _parse_dashboards(self) -> List[DashboardMetadata]:
        """Parse all dashboards from the workbook."""
        dashboards = []

        for position, dash_elem in enumerate(self.root.iterfind(".//dashboards/dashboard"), start=1):
            raw_id = dash_elem.get("name") or ""
            caption = dash_elem.get("caption") or ""
            name = caption or raw_id or f"Dashboard {position}"

            sheet_refs = [
                ref_elem.get("name") or ref_elem.get("sheet") or ""
                for ref_elem in dash_elem.iter("worksheet")
            ]
            zone_refs = [self._zone_sheet_ref(zone) for zone in dash_elem.iter("zone")]

            dashboards.append(DashboardMetadata(
                id=raw_id or name,
                raw_id=raw_id,
                caption=caption,
                name=name,
                worksheets=_ordered_union(sheet_refs, zone_refs),
            ))

        return dashboards

    def _zone_sheet_ref(self, zone_elem: etree._Element) -> str:
        """Worksheet shown by a dashboard zone, or '' for layout/text zones."""
        explicit = zone_elem.get("worksheet")
        if explicit:
            return explicit
        zone_type = (zone_elem.get("type-v2") or zone_elem.get("type") or "").lower()
        if zone_type in self.NON_SHEET_ZONE_TYPES:
            return ""
        return zone_elem.get("name") or ""

    def _build_lineage(
        self,
        datasources: List[DataSourceMetadata],
        sheets: List[SheetMetadata],
    ) -> LineageMetadata:
        """Build field->field and field->sheet pairs."""
        field_to_field = []
        for ds in datasources:
            for calc in ds.calculated_fields:
                for ref_name in calc.references.fields if calc.references else []:
                    field_to_field.append((ref_name, calc.name))

        field_to_sheet = []
        for sheet in sheets:
            for ref_name in sheet.fields_used:
                field_to_sheet.append((ref_name, sheet.name))

        return LineageMetadata(
            field_to_field=dedupe_pairs(field_to_field),
            field_to_sheet=dedupe_pairs(field_to_sheet),
        )


def parse_workbook(
    document: Document,
    workbook_name: str = "Workbook",
    source_file: Optional[str] = None,
) -> WorkbookMetadata:
    """
    Parse a workbook document into metadata.

    Args:
        document: Parsed .twb markup
        workbook_name: Name recorded on the metadata
        source_file: Original file path, if any

    Returns:
        WorkbookMetadata: Extracted metadata
    """
    return XMLMetadataExtractor(document, workbook_name, source_file).extract()
