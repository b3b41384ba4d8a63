"""
DAX synthesis for declarative chart definitions

Builds the query behind a chart directly from its data roles, so the text never
goes through the LLM or the validator. Table and column names are substituted
as given; the caller is trusted to pass names that exist in the model.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from pbi_chat.dax.validator import DaxErrorKind
from pbi_chat.schemas.visualization import DataRole, VisualizationSpec

logger = logging.getLogger(__name__)

DEFAULT_AGGREGATION = "SUM"

CATEGORY_ROLE = "category"
VALUE_ROLES = ("value", "values")
SECOND_VALUE_ROLES = ("secondValue", "y")

# Grouped aggregate ordered by the category axis
CATEGORY_ORDERED_TYPES = ("column", "bar", "line", "table")
SHARE_OF_TOTAL_TYPES = ("pie", "donut")


@dataclass(frozen=True)
class SynthesizedQuery:
    query: str

    succeeded = True


@dataclass(frozen=True)
class SynthesisFailure:
    error: str
    kind: DaxErrorKind

    succeeded = False


SynthesisResult = Union[SynthesizedQuery, SynthesisFailure]


def _find_role(roles: List[DataRole], names) -> Optional[DataRole]:
    for role in roles:
        if role.name in names:
            return role
    return None


def _column_ref(role: DataRole) -> str:
    return f"{role.table}[{role.column}]"


def _aggregate(role: DataRole) -> str:
    function = (role.aggregation or DEFAULT_AGGREGATION).upper()
    return f"{function}({_column_ref(role)})"


def _grouped(category: str, columns: Dict[str, str]) -> str:
    lines = [f"    {category}"]
    lines.extend(f'    "{label}", {expression}' for label, expression in columns.items())
    return "SUMMARIZECOLUMNS(\n" + ",\n".join(lines) + "\n)"


def _category_ordered(category: str, value: str) -> str:
    return (
        "EVALUATE\n"
        f"{_grouped(category, {'Value': value})}\n"
        f"ORDER BY {category} ASC"
    )


def _share_of_total(category: str, value: str) -> str:
    # The total ignores the category filter only; any other filter context still applies.
    grouped = _grouped(category, {"Value": value}).replace("\n", "\n    ")
    total = f"CALCULATE({value}, ALL({category}))"
    return (
        "EVALUATE\n"
        "ADDCOLUMNS(\n"
        f"    {grouped},\n"
        f'    "Percentage", DIVIDE([Value], {total})\n'
        ")\n"
        "ORDER BY [Value] DESC"
    )


def _scatter(category: str, x_value: str, y_value: str) -> str:
    return "EVALUATE\n" + _grouped(category, {"X": x_value, "Y": y_value})


def _value_ordered(category: str, value: str) -> str:
    return (
        "EVALUATE\n"
        f"{_grouped(category, {'Value': value})}\n"
        "ORDER BY [Value] DESC"
    )


def _synthesize(spec: VisualizationSpec) -> SynthesisResult:
    category = _find_role(spec.data_roles, (CATEGORY_ROLE,))
    value = _find_role(spec.data_roles, VALUE_ROLES)
    if category is None or value is None:
        return SynthesisFailure(
            error="Missing required data roles: a visualization needs a category and a value",
            kind=DaxErrorKind.MISSING_DATA_ROLE
        )

    chart_type = (spec.type or "").lower()
    category_ref = _column_ref(category)
    value_expr = _aggregate(value)

    if chart_type in CATEGORY_ORDERED_TYPES:
        return SynthesizedQuery(query=_category_ordered(category_ref, value_expr))

    if chart_type in SHARE_OF_TOTAL_TYPES:
        return SynthesizedQuery(query=_share_of_total(category_ref, value_expr))

    if chart_type == "scatter":
        second_value = _find_role(spec.data_roles, SECOND_VALUE_ROLES)
        if second_value is None:
            return SynthesisFailure(
                error="Missing required data roles: a scatter chart needs a secondValue or y role",
                kind=DaxErrorKind.MISSING_DATA_ROLE
            )
        return SynthesizedQuery(
            query=_scatter(category_ref, value_expr, _aggregate(second_value))
        )

    logger.debug(f"No dedicated template for visualization type {spec.type!r}, using default")
    return SynthesizedQuery(query=_value_ordered(category_ref, value_expr))


def generate_dax_for_visualization(spec: Union[VisualizationSpec, Dict[str, Any]]) -> SynthesisResult:
    """
    Build the DAX query for a chart definition

    Args:
        spec: VisualizationSpec, or a mapping in its JSON shape
              ({"type": ..., "dataRoles": [...], "title": ...})

    Returns:
        SynthesizedQuery, or SynthesisFailure; this function does not raise
    """
    try:
        if not isinstance(spec, VisualizationSpec):
            spec = VisualizationSpec.model_validate(spec)
        return _synthesize(spec)
    except Exception as e:
        logger.warning(f"Visualization query synthesis failed: {e}")
        return SynthesisFailure(error=str(e), kind=DaxErrorKind.SYNTHESIS_ERROR)
