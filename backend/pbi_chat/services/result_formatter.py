"""
Normalisation of executeQueries results into a columns/rows table
"""
import re
from typing import Any, Dict, List, Optional

# "sales[Item]" -> "Item", "[Value]" -> "Value"
_COLUMN_KEY = re.compile(r"^(?:'?[^\[\]]*'?)?\[(?P<name>[^\]]+)\]$")


def display_name(column_key: str) -> str:
    """Column caption for a result key"""
    match = _COLUMN_KEY.match(column_key)
    return match.group("name") if match else column_key


def _column_keys(table: Dict[str, Any], rows: List[Any]) -> List[str]:
    columns = table.get("columns")
    if isinstance(columns, list) and columns:
        return [col.get("name") if isinstance(col, dict) else str(col) for col in columns]

    keys: List[str] = []
    for row in rows:
        if isinstance(row, dict):
            for key in row:
                if key not in keys:
                    keys.append(key)
    return keys


def to_table(query_results: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    First table of a query result as {"columns": [...], "rows": [[...], ...]}

    Rows returned by the API are objects keyed by qualified column names; rows
    missing a key (nulls dropped by the serializer) get None in that position.

    Args:
        query_results: One entry of the executeQueries "results" array

    Returns:
        Normalised table, or None when there is no table to show
    """
    if not isinstance(query_results, dict):
        return None
    tables = query_results.get("tables") or []
    if not tables or not isinstance(tables[0], dict):
        return None

    table = tables[0]
    rows = table.get("rows") or []
    keys = _column_keys(table, rows)

    normalised_rows = []
    for row in rows:
        if isinstance(row, dict):
            normalised_rows.append([row.get(key) for key in keys])
        elif isinstance(row, list):
            normalised_rows.append(list(row))

    return {
        "columns": [display_name(key) for key in keys],
        "rows": normalised_rows
    }


def summarize_for_prompt(query_results: Optional[Dict[str, Any]], max_rows: int = 50) -> Any:
    """Copy of the results with each table cut down to max_rows rows"""
    if not isinstance(query_results, dict):
        return query_results

    tables = []
    for table in query_results.get("tables") or []:
        if not isinstance(table, dict):
            continue
        rows = table.get("rows") or []
        trimmed = dict(table, rows=rows[:max_rows])
        if len(rows) > max_rows:
            trimmed["truncatedRowCount"] = len(rows) - max_rows
        tables.append(trimmed)
    return dict(query_results, tables=tables)
