"""
Todo Line Serialization

Converts between a Todo and the single line of text that represents it in a
note file, e.g.::

    Call Bob #work ⏫ 🛫 2024-01-01 🗓 2024-01-03@17:00 ^XY9

Components trail the description as emoji-prefixed tokens. Parsing strips
them from the end of the line one at a time, in any order, until nothing
more can be removed.
"""

from dataclasses import asdict, dataclass, field
from typing import Optional
import logging
import re

from .dates import is_date_time, parse_line_date, parse_line_date_time, to_line_date_time
from .models import Todo

logger = logging.getLogger(__name__)

# Failsafe so a malformed line can never keep the parser looping
MAX_PARSE_RUNS = 20


@dataclass(frozen=True)
class TodoSymbols:
    """Emoji used to mark each component, and the expressions matching them."""
    start: str = "🛫"
    scheduled: str = "⌛"
    due: str = "🗓"
    done: str = "✅"

    # All of these end with `$` because they are matched and removed from the
    # end of the line until none are left.
    priority_regex: re.Pattern = re.compile(r"([⏫🔼🔽])$")
    block_id_regex: re.Pattern = re.compile(r"\^([0-9a-zA-Z]+)$")
    start_date_regex: re.Pattern = re.compile(r"🛫\ufe0f? *(\d{4}-\d{2}-\d{2})$")
    start_date_time_regex: re.Pattern = re.compile(r"🛫\ufe0f? *(\d{4}-\d{2}-\d{2}@\d+:\d+)$")
    scheduled_date_regex: re.Pattern = re.compile(r"[⏳⌛]\ufe0f? *(\d{4}-\d{2}-\d{2})$")
    scheduled_date_time_regex: re.Pattern = re.compile(r"[⏳⌛]\ufe0f? *(\d{4}-\d{2}-\d{2}@\d+:\d+)$")
    due_date_regex: re.Pattern = re.compile(r"[📅📆🗓]\ufe0f? *(\d{4}-\d{2}-\d{2})$")
    due_date_time_regex: re.Pattern = re.compile(r"[📅📆🗓]\ufe0f? *(\d{4}-\d{2}-\d{2}@\d+:\d+)$")
    done_date_regex: re.Pattern = re.compile(r"✅\ufe0f? *(\d{4}-\d{2}-\d{2})$")


DEFAULT_SYMBOLS = TodoSymbols()


class TodoRegularExpressions:
    """Expressions describing the markdown around a todo description."""

    # Indentation before a list marker, including > for blockquotes and callouts
    indentation = r"^([\s>]*)"

    # - or * list markers, or numbered list markers (eg 1.)
    list_marker = r"([-*]|[0-9]+\.)"

    # A checkbox, capturing the status character inside
    checkbox = r"\[(.)\]"

    # The rest of the todo after the checkbox
    after_checkbox = r" *(.*)"

    todo_regex = re.compile(indentation + list_marker + " +" + checkbox + after_checkbox)

    # Everything up to and including the checkbox, status captured separately
    checkbox_prefix_regex = re.compile(r"^([\s>]*(?:[-*]|[0-9]+\.) +\[)(.)(\] ?)")

    # Hash tags are a # at the start of the line or after whitespace, so that
    # URL fragments such as http://host/page#anchor are not taken as tags.
    hash_tags = re.compile(r"(?:^|\s)(#[^\s!@#$%^&*(),.?\":{}|<>]+)")

    # The same, anchored at the end of the line while trailing tokens are stripped
    hash_tags_from_end = re.compile(hash_tags.pattern + "$")


@dataclass
class TodoDetails:
    """The subset of Todo fields that can be parsed from a line of text."""
    content: str = ""
    block_id: Optional[str] = None
    priority: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    start_date_time: Optional[str] = None
    scheduled_date_time: Optional[str] = None
    due_date_time: Optional[str] = None
    done_date_time: Optional[str] = None

    def to_todo(self, **extra) -> Todo:
        return Todo(**asdict(self), **extra)


def _strip_suffix(pattern: re.Pattern, line: str) -> tuple[Optional[str], str]:
    """Match pattern at the end of line; return (captured, remaining line)."""
    match = pattern.search(line)
    if match is None:
        return None, line
    return match.group(1), line[:match.start()].strip()


class TodoSerializer:
    """Default line format, using emoji to concisely convey meaning."""

    def __init__(self, symbols: TodoSymbols = DEFAULT_SYMBOLS):
        self.symbols = symbols

    def _date_component(self, emoji: str, value: str) -> str:
        if is_date_time(value):
            rendered = to_line_date_time(value)
            if rendered is not None:
                return f"{emoji} {rendered}"
        return f"{emoji} {value}"

    def serialize(self, todo: Todo) -> str:
        """
        Convert a todo to its line representation (without the checkbox).

        Args:
            todo: The todo to serialize

        Returns:
            Components joined by single spaces, missing ones omitted
        """
        components = []
        if todo.content:
            components.append(todo.content)

        # Tags already written in the description are not repeated
        present = set(todo.content.split()) if todo.content else set()
        for tag in todo.tags or []:
            if tag not in present:
                components.append(tag)

        if todo.priority:
            components.append(todo.priority)

        if todo.start_date_time:
            components.append(self._date_component(self.symbols.start, todo.start_date_time))
        if todo.scheduled_date_time:
            components.append(self._date_component(self.symbols.scheduled, todo.scheduled_date_time))
        if todo.due_date_time:
            components.append(self._date_component(self.symbols.due, todo.due_date_time))

        if todo.done_date_time:
            components.append(f"{self.symbols.done} {todo.done_date_time}")

        if todo.block_id:
            components.append(f"^{todo.block_id}")

        return " ".join(components)

    def deserialize(self, line: str) -> TodoDetails:
        """
        Parse TodoDetails from the text of a todo.

        Tokens are removed from the end of the line in any order; the loop
        normally runs once when they are in the expected order. Hash tags may
        be mixed in between the other tokens: trailing ones are floated out
        while parsing and appended back to the description at the end. Tags
        inside the text stay where they are. Date tokens that are not real
        dates stay in the description.

        Args:
            line: The text after the checkbox

        Returns:
            The parsed details
        """
        s = self.symbols
        details = TodoDetails()
        trailing_tags: list[str] = []
        line = line.strip()

        runs = 0
        while True:
            matched = False

            value, line = _strip_suffix(s.priority_regex, line)
            if value is not None:
                details.priority = value
                matched = True

            value, line = _strip_suffix(s.block_id_regex, line)
            if value is not None:
                details.block_id = value
                matched = True

            for attr, date_regex, date_time_regex in (
                ("start_date_time", s.start_date_regex, s.start_date_time_regex),
                ("due_date_time", s.due_date_regex, s.due_date_time_regex),
                ("scheduled_date_time", s.scheduled_date_regex, s.scheduled_date_time_regex),
            ):
                if self._take_date(details, attr, date_regex, parse_line_date, line):
                    line = _strip_suffix(date_regex, line)[1]
                    matched = True
                if self._take_date(details, attr, date_time_regex, parse_line_date_time, line):
                    line = _strip_suffix(date_time_regex, line)[1]
                    matched = True

            if self._take_date(details, "done_date_time", s.done_date_regex, parse_line_date, line):
                line = _strip_suffix(s.done_date_regex, line)[1]
                matched = True

            # Trailing tags are prepended so they keep their original order
            tag_match = TodoRegularExpressions.hash_tags_from_end.search(line)
            if tag_match is not None:
                trailing_tags.insert(0, tag_match.group(1))
                line = line[:tag_match.start()].strip()
                matched = True

            runs += 1
            if not matched:
                break
            if runs >= MAX_PARSE_RUNS:
                logger.debug(f"Stopped parsing after {runs} runs: {line!r}")
                break

        # The goal is for 'Do something #tag1 🗓 2024-01-02 #tag2' to keep the
        # description 'Do something #tag1 #tag2'
        details.content = " ".join([line] + trailing_tags).strip()
        details.tags = list(dict.fromkeys(
            m.group(1) for m in TodoRegularExpressions.hash_tags.finditer(details.content)
        ))
        return details

    @staticmethod
    def _take_date(details: TodoDetails, attr: str, pattern: re.Pattern, parse, line: str) -> bool:
        match = pattern.search(line)
        if match is None:
            return False
        value = parse(match.group(1))
        if value is None:
            return False
        setattr(details, attr, value)
        return True
