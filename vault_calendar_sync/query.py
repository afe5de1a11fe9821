"""
Agenda Queries

A query is a small YAML document, as embedded in a note's code block::

    name: This week
    filter: "#work"
    timeMin: 2024-01-01
    timeMax: 2024-01-07
    maxEvents: 20
    sorting: [date, priorityDESC]
    group: true

parse_query validates its shape; apply_query selects and orders todos.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Optional

import yaml

from .dates import date_part, is_date, parse_moment
from .exceptions import QueryParsingError
from .models import Priority, Todo

SORTING_OPTIONS = ("date", "dateDESC", "priority", "priorityDESC")

# Lower rank sorts first for "priority"
PRIORITY_RANK = {
    Priority.HIGH.value: 0,
    Priority.MEDIUM.value: 1,
    Priority.LOW.value: 2,
}
NO_PRIORITY_RANK = 3


@dataclass
class Query:
    name: Optional[str] = None
    filter: Optional[str] = None
    time_min: Optional[str] = None
    time_max: Optional[str] = None
    max_events: Optional[int] = None
    sorting: list[str] = field(default_factory=list)
    group: bool = False


def _format_sorting_options() -> str:
    return ", ".join(f"'{option}'" for option in SORTING_OPTIONS)


def _time_bound(data: dict, key: str) -> Optional[str]:
    if key not in data:
        return None
    value = data[key]
    # YAML reads unquoted dates as date objects
    if isinstance(value, (date, datetime)):
        value = value.isoformat()
    if not isinstance(value, str):
        raise QueryParsingError(f"'{key}' field must be a string")
    if parse_moment(value) is None:
        raise QueryParsingError(f"'{key}' field must be a valid date string")
    return value


def parse_query(raw: str) -> Query:
    """
    Parse a YAML query.

    Raises:
        QueryParsingError: if the text is not YAML or a field has the wrong shape
    """
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise QueryParsingError("Query is not valid YAML", e)

    if data is None:
        return Query()
    if not isinstance(data, dict):
        raise QueryParsingError("Query must be a mapping of fields")

    return parse_object(data)


def parse_object(data: dict[str, Any]) -> Query:
    """Validate an already decoded query mapping."""
    if "name" in data and not isinstance(data["name"], str):
        raise QueryParsingError("'name' field must be a string")

    if "filter" in data and not isinstance(data["filter"], str):
        raise QueryParsingError("'filter' field must be a string")

    time_min = _time_bound(data, "timeMin")
    time_max = _time_bound(data, "timeMax")

    max_events = data.get("maxEvents")
    if "maxEvents" in data and (isinstance(max_events, bool) or not isinstance(max_events, int)):
        raise QueryParsingError("'maxEvents' field must be a number")

    if "group" in data and not isinstance(data["group"], bool):
        raise QueryParsingError("'group' field must be a boolean.")

    sorting = data.get("sorting", [])
    if not isinstance(sorting, list) or not all(
        isinstance(option, str) and option in SORTING_OPTIONS for option in sorting
    ):
        raise QueryParsingError(
            f"'sorting' field must be an array of strings within the set [{_format_sorting_options()}]."
        )

    return Query(
        name=data.get("name"),
        filter=data.get("filter"),
        time_min=time_min,
        time_max=time_max,
        max_events=max_events,
        sorting=list(sorting),
        group=data.get("group", False),
    )


def _date_key(todo: Todo):
    moment = parse_moment(todo.start_date_time)
    # Undated todos go last either way
    return (moment is None, moment.timestamp() if moment else 0.0)


def _priority_key(todo: Todo) -> int:
    return PRIORITY_RANK.get(todo.priority or "", NO_PRIORITY_RANK)


def apply_query(query: Query, todos: list[Todo]) -> list[Todo]:
    """Filter, sort and truncate todos as the query asks."""
    selected = list(todos)

    if query.filter:
        needle = query.filter.lower()
        selected = [t for t in selected if needle in (t.content or "").lower()]

    lower = parse_moment(query.time_min)
    upper = parse_moment(query.time_max)
    # A bare date as upper bound includes that whole day
    whole_day = is_date(query.time_max)
    if upper and whole_day:
        upper += timedelta(days=1)

    if lower or upper:
        bounded = []
        for todo in selected:
            start = parse_moment(todo.start_date_time)
            if start is None:
                continue
            if lower and start < lower:
                continue
            if upper and (start >= upper if whole_day else start > upper):
                continue
            bounded.append(todo)
        selected = bounded

    # Stable sorts applied last key first give a multi-key ordering
    for option in reversed(query.sorting):
        if option == "date":
            selected.sort(key=_date_key)
        elif option == "dateDESC":
            dated = [t for t in selected if parse_moment(t.start_date_time)]
            undated = [t for t in selected if not parse_moment(t.start_date_time)]
            selected = sorted(dated, key=_date_key, reverse=True) + undated
        elif option == "priority":
            selected.sort(key=_priority_key)
        elif option == "priorityDESC":
            selected.sort(key=_priority_key, reverse=True)

    if query.max_events is not None:
        selected = selected[:query.max_events]

    return selected


def _agenda_line(todo: Todo) -> str:
    parts = [f"- [{todo.status or ' '}] {todo.content or ''}"]
    if todo.priority:
        parts.append(todo.priority)
    if todo.due_date_time and todo.due_date_time != todo.start_date_time:
        parts.append(f"(due {todo.due_date_time})")
    if todo.source_path:
        parts.append(f"[{todo.source_path}]")
    return " ".join(parts)


def render_agenda(query: Query, todos: list[Todo]) -> str:
    """Plain-text agenda, grouped by start date when the query asks for it."""
    lines = []
    if query.name:
        lines.append(query.name)
        lines.append("=" * len(query.name))

    if not todos:
        lines.append("(no matching tasks)")
        return "\n".join(lines)

    if not query.group:
        lines.extend(_agenda_line(todo) for todo in todos)
        return "\n".join(lines)

    groups: "OrderedDict[str, list[Todo]]" = OrderedDict()
    for todo in todos:
        day = date_part(todo.start_date_time) if todo.start_date_time else None
        groups.setdefault(day or "No date", []).append(todo)

    for day, members in groups.items():
        lines.append("")
        lines.append(day)
        lines.extend(_agenda_line(todo) for todo in members)
    return "\n".join(lines).lstrip("\n")
