"""
WIQL query construction for backlog and activity queries.
"""
from typing import List, Optional, Sequence, Tuple

from .constants import (
    ACTIVITY_FIELDS,
    BACKLOG_FIELDS,
    DEFAULT_BACKLOG_ORDER,
    FieldNames,
    format_wiql_fields,
)
from .validation import (
    ValidationError,
    sanitize_wiql_string,
    validate_order_by,
    validate_wiql,
    validate_wiql_literal,
)


def _in_clause(field: str, values: Sequence[str], label: str) -> str:
    literals = ', '.join(
        f"'{sanitize_wiql_string(validate_wiql_literal(value, label))}'"
        for value in values
    )
    return f"[{field}] IN ({literals})"


def _order_clause(order_by: Optional[Sequence[Tuple[str, str]]]) -> str:
    pairs = validate_order_by(order_by) if order_by else DEFAULT_BACKLOG_ORDER
    return "ORDER BY " + ', '.join(f"[{field}] {direction}" for field, direction in pairs)


def _compose(
    project_name: str,
    fields: List[str],
    conditions: List[str],
    order_by: Optional[Sequence[Tuple[str, str]]]
) -> str:
    if not project_name or not project_name.strip():
        raise ValidationError("Project name is required", field="projectId")

    query = (
        f"SELECT {format_wiql_fields(fields)} "
        f"FROM WorkItems "
        f"WHERE [{FieldNames.TEAM_PROJECT}] = '{sanitize_wiql_string(project_name.strip())}'"
    )
    for condition in conditions:
        query += f" AND {condition}"
    query += " " + _order_clause(order_by)

    return validate_wiql(query)


def build_query(
    project_name: str,
    assigned_to_me: bool = False,
    states: Optional[Sequence[str]] = None,
    work_item_types: Optional[Sequence[str]] = None,
    order_by: Optional[Sequence[Tuple[str, str]]] = None
) -> str:
    """
    Build a backlog WIQL query scoped to a single project.

    Empty or missing ``states``/``work_item_types`` omit that filter instead
    of producing an empty ``IN ()``.

    Args:
        project_name: Project name (WIQL does not accept project GUIDs)
        assigned_to_me: Restrict to items assigned to the token owner
        states: State names, kept in the given order
        work_item_types: Work item type names, kept in the given order
        order_by: (field reference name, ASC|DESC) pairs; defaults to
            priority, story points, then most recently changed

    Returns:
        WIQL query string

    Raises:
        ValidationError: If the project name, a literal or an ordering is invalid
    """
    conditions = []

    if work_item_types:
        conditions.append(_in_clause(FieldNames.WORK_ITEM_TYPE, work_item_types, "types"))

    if states:
        conditions.append(_in_clause(FieldNames.STATE, states, "states"))

    if assigned_to_me:
        conditions.append(f"[{FieldNames.ASSIGNED_TO}] = @Me")

    return _compose(project_name, BACKLOG_FIELDS, conditions, order_by)


def build_activity_query(project_name: str, days: int) -> str:
    """Build a query for items in a project changed within the last ``days`` days."""
    if days < 1:
        raise ValidationError("days must be at least 1", field="days")

    return _compose(
        project_name,
        ACTIVITY_FIELDS,
        [f"[{FieldNames.CHANGED_DATE}] >= @Today - {int(days)}"],
        [(FieldNames.CHANGED_DATE, "DESC")]
    )
