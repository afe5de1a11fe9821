"""
Calendar Event Mapping

Bidirectional mapping between a Todo and the calendar service's event
resource. Fields the calendar cannot model natively (status, blockId,
priority, tags, done date) travel as a JSON object in the event description.
"""

from dataclasses import dataclass, replace
from typing import Any, Optional
import json
import logging
import re

from .dates import date_part, format_date_time, is_date_time, local_timezone_name, parse_moment
from .exceptions import InvalidTodoError, MappingError
from .models import Todo, TodoStatus

logger = logging.getLogger(__name__)

# Summary prefixes marking an event's status in calendar views
STATUS_ICONS = {
    "x": "✅",
    "-": "🚫",
    "!": "\u2757\ufe0f",
    ">": "💤",
    "?": "❓",
}

_ICON_TO_STATUS = {icon.rstrip("\ufe0f"): status for status, icon in STATUS_ICONS.items()}
_ICON_PREFIX = re.compile(r"^(\u2705|\U0001F6AB|\u2757\ufe0f?|\U0001F4A4|\u2753) ")


@dataclass
class EventTime:
    """Start or end of an event: either an all-day date or a date-time."""
    date: Optional[str] = None
    date_time: Optional[str] = None
    time_zone: Optional[str] = None

    def to_api(self) -> dict:
        data = {}
        if self.date is not None:
            data["date"] = self.date
        if self.date_time is not None:
            data["dateTime"] = self.date_time
        if self.time_zone is not None:
            data["timeZone"] = self.time_zone
        return data

    @classmethod
    def from_api(cls, data: Any) -> Optional["EventTime"]:
        if not isinstance(data, dict):
            return None
        if not data.get("date") and not data.get("dateTime"):
            return None
        return cls(
            date=data.get("date"),
            date_time=data.get("dateTime"),
            time_zone=data.get("timeZone"),
        )


@dataclass
class CalendarEvent:
    """The parts of a calendar event resource this tool reads or writes."""
    summary: Optional[str] = None
    description: Optional[str] = None
    start: Optional[EventTime] = None
    end: Optional[EventTime] = None
    id: Optional[str] = None
    html_link: Optional[str] = None
    updated: Optional[str] = None

    def to_api(self) -> dict:
        """Request body for insert or patch; absent fields are left out."""
        data = {}
        if self.summary is not None:
            data["summary"] = self.summary
        if self.description is not None:
            data["description"] = self.description
        if self.start is not None:
            data["start"] = self.start.to_api()
        if self.end is not None:
            data["end"] = self.end.to_api()
        if self.id is not None:
            data["id"] = self.id
        return data

    @classmethod
    def from_api(cls, data: Any) -> "CalendarEvent":
        """Validate a raw event resource at the mapping boundary."""
        if not isinstance(data, dict):
            raise MappingError(f"Calendar event must be an object, got {type(data).__name__}")
        return cls(
            summary=data.get("summary"),
            description=data.get("description"),
            start=EventTime.from_api(data.get("start")),
            end=EventTime.from_api(data.get("end")),
            id=data.get("id"),
            html_link=data.get("htmlLink"),
            updated=data.get("updated"),
        )


def serialize_description(todo: Todo) -> str:
    """Side-channel metadata stored in the event description."""
    meta = {
        "status": todo.status,
        "blockId": todo.block_id,
        "priority": todo.priority or None,
        "tags": list(todo.tags or []),
    }
    if todo.done_date_time:
        meta["doneDateTime"] = todo.done_date_time
    return json.dumps(meta, ensure_ascii=False)


def to_remote_event(todo: Todo) -> CalendarEvent:
    """
    Build a calendar event from a todo.

    Uses a timed interval when both start and due carry a time, otherwise an
    all-day interval whose end defaults to the start date.

    Raises:
        InvalidTodoError: if the todo has no usable start or due date
    """
    start = todo.start_date_time
    due = todo.due_date_time

    if not start and not due:
        raise InvalidTodoError(f"Todo '{todo.content}' has neither a start nor a due date")

    if is_date_time(start) and is_date_time(due):
        start_moment = parse_moment(start)
        due_moment = parse_moment(due)
        if start_moment is None or due_moment is None:
            raise InvalidTodoError(f"Todo '{todo.content}' has an invalid date-time")
        time_zone = local_timezone_name()
        start_time = EventTime(date_time=format_date_time(start_moment), time_zone=time_zone)
        end_time = EventTime(date_time=format_date_time(due_moment), time_zone=time_zone)
    else:
        start_date = date_part(start or due)
        end_date = date_part(due) if due else start_date
        if start_date is None or end_date is None:
            raise InvalidTodoError(f"Todo '{todo.content}' has an invalid date")
        start_time = EventTime(date=start_date)
        end_time = EventTime(date=end_date)

    return CalendarEvent(
        summary=todo.content,
        description=serialize_description(todo),
        start=start_time,
        end=end_time,
    )


def _read_time(event_time: EventTime) -> Optional[str]:
    if event_time.date_time:
        moment = parse_moment(event_time.date_time)
        return format_date_time(moment) if moment else None
    return event_time.date


def _meta_field(meta: dict, key: str, expected: type, event_id: Optional[str]) -> Any:
    """Read one metadata field; a bad value is logged and skipped."""
    try:
        value = meta[key]
        if value is not None and not isinstance(value, expected):
            raise TypeError(f"expected {expected.__name__}, got {type(value).__name__}")
        return value
    except KeyError:
        return None
    except TypeError as e:
        logger.warning(f"Ignoring '{key}' in description of event {event_id}: {e}")
        return None


def from_remote_event(event: CalendarEvent) -> Todo:
    """
    Rebuild a todo from a calendar event.

    Raises:
        MappingError: if the event has no start or end
    """
    if event.start is None or event.end is None:
        raise MappingError(f"Calendar event {event.id} ({event.summary}) has no start/end")

    content = event.summary
    icon_status = None
    if content:
        match = _ICON_PREFIX.match(content)
        if match:
            icon = match.group(1)
            icon_status = _ICON_TO_STATUS.get(icon.rstrip("\ufe0f"))
            content = content[match.end():]

    meta: dict = {}
    if event.description:
        try:
            parsed = json.loads(event.description)
            if isinstance(parsed, dict):
                meta = parsed
            else:
                logger.debug(f"Description of event {event.id} is not a JSON object")
        except json.JSONDecodeError as e:
            logger.debug(f"Description of event {event.id} is not JSON: {e}")

    tags = _meta_field(meta, "tags", list, event.id)
    if tags is not None and not all(isinstance(tag, str) for tag in tags):
        logger.warning(f"Ignoring non-string tags in description of event {event.id}")
        tags = None

    status = _meta_field(meta, "status", str, event.id)

    return Todo(
        content=content,
        priority=_meta_field(meta, "priority", str, event.id),
        tags=tags,
        start_date_time=_read_time(event.start),
        due_date_time=_read_time(event.end),
        done_date_time=_meta_field(meta, "doneDateTime", str, event.id),
        status=status if status is not None else icon_status,
        block_id=_meta_field(meta, "blockId", str, event.id),
        remote_id=event.id,
        remote_link=event.html_link,
        last_modified=event.updated,
    )


def normalize_status(status: Optional[str]) -> str:
    """Reduce a status to one the calendar summary can show."""
    if status in ("!", "?", ">", "-", " "):
        return status
    return TodoStatus.DONE


def event_status_patch(todo: Todo) -> CalendarEvent:
    """
    Partial event carrying the todo's status as summary icon and metadata.

    Unknown or missing statuses are shown with the done icon. The metadata
    keeps an unknown status as it is, so reading the event back gives the
    vault's own status.
    """
    status = normalize_status(todo.status)
    patched = replace(todo, status=todo.status or status)
    icon = STATUS_ICONS.get(status)
    summary = f"{icon} {todo.content}" if icon else todo.content
    return CalendarEvent(summary=summary, description=serialize_description(patched))
