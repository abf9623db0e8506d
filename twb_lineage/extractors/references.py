"""
Field and parameter reference extraction from Tableau formulas.

Brackets are matched flat (no nesting): ``[Sales]`` is a field, ``[:Rate]``
and ``[Parameters].[Rate]`` are parameters. Irregular brackets are skipped,
never raised on.
"""

import re
from typing import Any, Dict

from ..models.metadata_models import ReferenceSet

TOKEN_PATTERN = re.compile(r"\[[^\[\]]*\]")
PARAMETERS_QUALIFIED = re.compile(r"\[Parameters\]\s*\.\s*(\[[^\[\]]*\])", re.IGNORECASE)


def extract_calculation_references(formula: Any) -> ReferenceSet:
    """
    Extract field and parameter references from a formula.

    Args:
        formula: Tableau formula text (may be empty or None)

    Returns:
        ReferenceSet with deduplicated, insertion-ordered fields and parameters

    Example:
        >>> refs = extract_calculation_references("[Sales]+[:GrowthRate]")
        >>> refs.fields, refs.parameters
        (['[Sales]'], ['GrowthRate'])
    """
    if not formula:
        return ReferenceSet()
    text = formula if isinstance(formula, str) else str(formula)

    # dicts keep insertion order and dedupe
    fields: Dict[str, None] = {}
    parameters: Dict[str, None] = {}

    qualified_spans = []
    for match in PARAMETERS_QUALIFIED.finditer(text):
        qualified_spans.append(match.span())
        name = _parameter_name(match.group(1))
        if name:
            parameters[name] = None

    for match in TOKEN_PATTERN.finditer(text):
        start = match.start()
        if any(lo <= start < hi for lo, hi in qualified_spans):
            continue
        token = match.group(0).strip()
        inner = token[1:-1].strip()
        if not inner:
            continue
        if inner.startswith(":"):
            name = _parameter_name(token)
            if name:
                parameters[name] = None
        else:
            fields[token] = None

    return ReferenceSet(fields=list(fields), parameters=list(parameters))


def _parameter_name(token: str) -> str:
    return token.replace("[", "").replace("]", "").replace(":", "").strip()
