"""
Diagnostics and validation for the lineage pipeline.

``Diagnostics`` is the channel for non-fatal data-quality warnings raised
while building or normalizing a graph. ``LineageValidator`` is a post-hoc
check of a finished metadata model and graph.
"""

import logging
from typing import List, Dict, Any, Optional, Sequence
from dataclasses import dataclass, field
from enum import Enum

from ..models.metadata_models import WorkbookMetadata, FieldMetadata, DataSourceMetadata
from ..models.graph_models import Graph, NodeType
from .naming import normalize_name

logger = logging.getLogger(__name__)


class IssueCategory(str, Enum):
    """Kinds of data-quality warnings."""
    DUPLICATE_ID = "duplicate_id"
    ID_FALLBACK = "id_fallback"
    MISSING_ID = "missing_id"
    INVALID_NODE = "invalid_node"
    INVALID_EDGE = "invalid_edge"
    MISSING_ENDPOINT = "missing_endpoint"
    DANGLING_EDGE = "dangling_edge"
    DUPLICATE_EDGE_ID = "duplicate_edge_id"
    CYCLE = "cycle"
    UNRESOLVED_REFERENCE = "unresolved_reference"
    LARGE_FILE = "large_file"


@dataclass
class DataQualityWarning:
    """A non-fatal problem found while loading a workbook."""
    category: IssueCategory
    item: str
    message: str
    suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "item": self.item,
            "message": self.message,
            "suggestion": self.suggestion,
        }


@dataclass
class Diagnostics:
    """Collects data-quality warnings for one workbook load."""
    warnings: List[DataQualityWarning] = field(default_factory=list)

    def add(
        self,
        category: IssueCategory,
        item: Any,
        message: str,
        suggestion: Optional[str] = None,
    ) -> DataQualityWarning:
        warning = DataQualityWarning(
            category=category, item=str(item), message=message, suggestion=suggestion,
        )
        self.warnings.append(warning)
        logger.warning("[%s] %s", category.value, message)
        return warning

    def count(self, category: Optional[IssueCategory] = None) -> int:
        if category is None:
            return len(self.warnings)
        return sum(1 for w in self.warnings if w.category == category)

    def by_category(self, category: IssueCategory) -> List[DataQualityWarning]:
        return [w for w in self.warnings if w.category == category]

    def __len__(self) -> int:
        return len(self.warnings)

    def to_dict(self) -> Dict[str, Any]:
        summary: Dict[str, int] = {}
        for w in self.warnings:
            summary[w.category.value] = summary.get(w.category.value, 0) + 1
        return {
            "total": len(self.warnings),
            "by_category": summary,
            "warnings": [w.to_dict() for w in self.warnings],
        }


class ValidationLevel(str, Enum):
    """Validation severity levels."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class ValidationIssue:
    """Represents a validation issue."""
    level: ValidationLevel
    category: str
    item: str
    message: str
    suggestion: Optional[str] = None


@dataclass
class ValidationResult:
    """Result of lineage validation."""
    is_valid: bool = True
    issues: List[ValidationIssue] = field(default_factory=list)
    warnings_count: int = 0
    errors_count: int = 0
    critical_count: int = 0
    checked_items: int = 0
    passed_items: int = 0

    def add_issue(self, issue: ValidationIssue):
        """Add a validation issue."""
        self.issues.append(issue)

        if issue.level == ValidationLevel.WARNING:
            self.warnings_count += 1
        elif issue.level == ValidationLevel.ERROR:
            self.errors_count += 1
            self.is_valid = False
        elif issue.level == ValidationLevel.CRITICAL:
            self.critical_count += 1
            self.is_valid = False

    def get_score(self) -> float:
        """Calculate a validation score (0-100)."""
        if self.checked_items == 0:
            return 100.0

        issue_penalty = (
            self.critical_count * 20 +
            self.errors_count * 10 +
            self.warnings_count * 2
        )

        score = max(0, 100 - issue_penalty)
        return round(score, 1)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "is_valid": self.is_valid,
            "score": self.get_score(),
            "checked_items": self.checked_items,
            "passed_items": self.passed_items,
            "issues_summary": {
                "critical": self.critical_count,
                "errors": self.errors_count,
                "warnings": self.warnings_count,
            },
            "issues": [
                {
                    "level": i.level.value,
                    "category": i.category,
                    "item": i.item,
                    "message": i.message,
                    "suggestion": i.suggestion,
                }
                for i in self.issues
            ]
        }


class LineageValidator:
    """
    Validates a parsed workbook and its lineage graph.

    Checks:
    - Workbook structure
    - Calculated field formulas and references
    - Worksheet and dashboard references
    - Graph id uniqueness and referential integrity
    - Cycles
    """

    def __init__(self, strict_mode: bool = False):
        """
        Initialize the validator.

        Args:
            strict_mode: If True, treat warnings as errors
        """
        self.strict_mode = strict_mode

    def validate(
        self,
        metadata: WorkbookMetadata,
        graph: Graph,
        cycles: Sequence[Sequence[str]] = (),
    ) -> ValidationResult:
        """
        Validate the metadata and graph of one workbook.

        Args:
            metadata: Parsed workbook metadata
            graph: Lineage graph built from it
            cycles: Cycles reported by the cycle detector

        Returns:
            ValidationResult: Validation results
        """
        result = ValidationResult()
        known_names = self._graph_names(graph)

        self._validate_structure(metadata, result)

        for ds in metadata.datasources:
            for calc in ds.calculated_fields:
                self._validate_calculated_field(calc, ds, known_names, result)

        self._validate_sheets(metadata, result)
        self._validate_dashboards(metadata, known_names, result)
        self._validate_graph(graph, result)
        self._validate_cycles(cycles, result)

        result.passed_items = result.checked_items - result.errors_count - result.critical_count
        return result

    def _add(self, result: ValidationResult, level: ValidationLevel, **kwargs):
        if self.strict_mode and level == ValidationLevel.WARNING:
            level = ValidationLevel.ERROR
        result.add_issue(ValidationIssue(level=level, **kwargs))

    def _graph_names(self, graph: Graph) -> Dict[NodeType, set]:
        names: Dict[NodeType, set] = {}
        for node in graph.nodes:
            bucket = names.setdefault(node.type, set())
            bucket.add(normalize_name(node.raw_name or node.name))
            if node.original_id:
                bucket.add(normalize_name(node.original_id))
        return names

    def _validate_structure(self, metadata: WorkbookMetadata, result: ValidationResult):
        """Validate basic structure."""
        result.checked_items += 1
        if not metadata.name:
            self._add(
                result, ValidationLevel.ERROR,
                category="structure",
                item="workbook",
                message="Workbook name is missing",
            )

        result.checked_items += 1
        if not metadata.datasources:
            self._add(
                result, ValidationLevel.WARNING,
                category="structure",
                item="datasources",
                message="No data sources found in workbook",
                suggestion="Verify the workbook has connected data sources",
            )

        result.checked_items += 1
        if not metadata.worksheets:
            self._add(
                result, ValidationLevel.WARNING,
                category="structure",
                item="worksheets",
                message="No worksheets found in workbook",
            )

    def _validate_calculated_field(
        self,
        calc: FieldMetadata,
        ds: DataSourceMetadata,
        known_names: Dict[NodeType, set],
        result: ValidationResult,
    ):
        """Validate a calculated field's formula and references."""
        result.checked_items += 1

        if not calc.formula.strip():
            self._add(
                result, ValidationLevel.WARNING,
                category="calculated_field",
                item=calc.name,
                message=f"Calculated field '{calc.name}' has no formula",
            )
            return

        field_names = known_names.get(NodeType.FIELD, set()) | known_names.get(
            NodeType.CALCULATED_FIELD, set()
        )
        param_names = known_names.get(NodeType.PARAMETER, set())
        references = calc.references

        for ref in references.fields if references else []:
            result.checked_items += 1
            if normalize_name(ref) not in field_names:
                self._add(
                    result, ValidationLevel.INFO,
                    category="calculated_field",
                    item=calc.name,
                    message=f"Referenced field '{ref}' not found in workbook",
                    suggestion="Field may come from another data source or have been removed",
                )

        for ref in references.parameters if references else []:
            result.checked_items += 1
            if normalize_name(ref) not in param_names:
                self._add(
                    result, ValidationLevel.WARNING,
                    category="calculated_field",
                    item=calc.name,
                    message=f"Referenced parameter '{ref}' not found in workbook",
                )

    def _validate_sheets(self, metadata: WorkbookMetadata, result: ValidationResult):
        for sheet in metadata.worksheets:
            result.checked_items += 1
            if not sheet.fields_used:
                self._add(
                    result, ValidationLevel.INFO,
                    category="worksheet",
                    item=sheet.name,
                    message=f"Worksheet '{sheet.name}' uses no fields",
                    suggestion="Sheet may be blank or using only text/images",
                )

    def _validate_dashboards(
        self,
        metadata: WorkbookMetadata,
        known_names: Dict[NodeType, set],
        result: ValidationResult,
    ):
        sheet_names = known_names.get(NodeType.WORKSHEET, set())
        for dashboard in metadata.dashboards:
            result.checked_items += 1
            if not dashboard.worksheets:
                self._add(
                    result, ValidationLevel.INFO,
                    category="dashboard",
                    item=dashboard.name,
                    message=f"Dashboard '{dashboard.name}' shows no worksheets",
                )
            for ws_name in dashboard.worksheets:
                result.checked_items += 1
                if normalize_name(ws_name) not in sheet_names:
                    self._add(
                        result, ValidationLevel.WARNING,
                        category="dashboard",
                        item=dashboard.name,
                        message=f"Referenced worksheet '{ws_name}' not found",
                    )

    def _validate_graph(self, graph: Graph, result: ValidationResult):
        """Check node id uniqueness and edge endpoints."""
        seen = set()
        for node in graph.nodes:
            result.checked_items += 1
            if node.id in seen:
                self._add(
                    result, ValidationLevel.CRITICAL,
                    category="graph",
                    item=node.id,
                    message=f"Duplicate node id '{node.id}'",
                )
            seen.add(node.id)

        for edge in graph.edges:
            result.checked_items += 1
            if edge.source not in seen or edge.target not in seen:
                self._add(
                    result, ValidationLevel.CRITICAL,
                    category="graph",
                    item=edge.id,
                    message=f"Edge '{edge.id}' references a missing node",
                )

    def _validate_cycles(self, cycles: Sequence[Sequence[str]], result: ValidationResult):
        result.checked_items += 1
        for cycle in cycles:
            self._add(
                result, ValidationLevel.WARNING,
                category="cycle",
                item=cycle[0] if cycle else "",
                message=f"Circular dependency: {' -> '.join(cycle)}",
                suggestion="Check the calculations involved for self-reference",
            )

    def generate_report(self, result: ValidationResult) -> str:
        """Generate a human-readable validation report."""
        lines = [
            "=" * 60,
            "TABLEAU LINEAGE VALIDATION REPORT",
            "=" * 60,
            "",
            f"Validation Score: {result.get_score()}/100",
            f"Status: {'PASSED' if result.is_valid else 'FAILED'}",
            "",
            "SUMMARY",
            "-" * 40,
            f"Items Checked: {result.checked_items}",
            f"Items Passed: {result.passed_items}",
            f"Critical Issues: {result.critical_count}",
            f"Errors: {result.errors_count}",
            f"Warnings: {result.warnings_count}",
            "",
        ]

        if result.issues:
            lines.append("ISSUES")
            lines.append("-" * 40)

            for level in [ValidationLevel.CRITICAL, ValidationLevel.ERROR,
                          ValidationLevel.WARNING, ValidationLevel.INFO]:
                level_issues = [i for i in result.issues if i.level == level]
                if level_issues:
                    lines.append(f"\n[{level.value.upper()}]")
                    for issue in level_issues[:15]:
                        lines.append(f"  * {issue.category}/{issue.item}: {issue.message}")
                        if issue.suggestion:
                            lines.append(f"    -> Suggestion: {issue.suggestion}")
                    if len(level_issues) > 15:
                        lines.append(f"  ... and {len(level_issues) - 15} more")
        else:
            lines.append("No issues found!")

        lines.extend(["", "=" * 60])

        return "\n".join(lines)
