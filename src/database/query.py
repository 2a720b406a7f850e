"""Search, filter and sort helpers shared by the admin and RBAC listings."""

from typing import Any, Iterable, Optional

from sqlalchemy import String
from sqlalchemy.orm import Query

from src.auth.errors import APIError

SEARCH_OPERATORS = ("contains", "starts_with", "ends_with")


def apply_search(query: Query, column, operator: Optional[str], value: Optional[str]) -> Query:
    """Case-insensitive text search on one column"""
    if value is None or value == "":
        return query
    operator = operator or "contains"
    if operator == "starts_with":
        return query.filter(column.istartswith(value, autoescape=True))
    if operator == "ends_with":
        return query.filter(column.iendswith(value, autoescape=True))
    return query.filter(column.icontains(value, autoescape=True))


def apply_filter(query: Query, column, operator: Optional[str], value: Any) -> Query:
    operator = operator or "eq"
    if operator == "eq":
        return query.filter(column == value)
    if operator == "ne":
        return query.filter(column != value)
    if operator == "lt":
        return query.filter(column < value)
    if operator == "lte":
        return query.filter(column <= value)
    if operator == "gt":
        return query.filter(column > value)
    if operator == "gte":
        return query.filter(column >= value)
    if operator == "in":
        values = value if isinstance(value, (list, tuple, set)) else [value]
        return query.filter(column.in_(list(values)))
    if operator in SEARCH_OPERATORS:
        # Text operators only make sense on text columns
        if not isinstance(getattr(column, "type", None), String):
            raise APIError(400, "INVALID_FILTERS", f"Operator {operator} needs a text field")
        return apply_search(query, column, operator, str(value))
    raise APIError(400, "INVALID_FILTERS", f"Unsupported filter operator: {operator}")


def apply_sort(query: Query, model, sort_by: Optional[str], direction: Optional[str],
               allowed: Iterable[str], default: Optional[str] = None) -> Query:
    field = sort_by or default
    if not field:
        return query
    if field not in allowed:
        raise APIError(400, "INVALID_SORT_FIELD", f"Cannot sort by '{field}'")
    column = getattr(model, field)
    return query.order_by(column.desc() if (direction or "asc").lower() == "desc" else column.asc())
