"""
Vault Adapter

Local side of the sync: finds task lines in markdown notes, assigns them
block IDs, and rewrites single lines in place.

Every read-modify-write of a note file happens under one lock shared by the
whole vault, so identifier assignment and resync edits never interleave.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Protocol
import asyncio
import hashlib
import logging
import re

import aiofiles

from .dates import parse_moment, start_of_day
from .exceptions import InvalidReferenceError
from .models import Todo, TodoStatus
from .serialization import TodoDetails, TodoRegularExpressions, TodoSerializer

logger = logging.getLogger(__name__)

BLOCK_ID_WIDTH = 8

# Returns (path, line index) of the line being edited, or None
CursorLocator = Callable[[], Optional[tuple[str, int]]]


class VaultStorage(Protocol):
    """Where note files live. Paths are relative to the vault root."""

    async def read(self, path: str) -> str: ...

    async def write(self, path: str, text: str) -> None: ...

    async def list(self) -> list[str]: ...


class FileSystemVault:
    """Notes stored as ``*.md`` files below a directory."""

    def __init__(self, root: Path, encoding: str = "utf-8"):
        self.root = Path(root)
        self.encoding = encoding

    def _resolve(self, path: str) -> Path:
        return self.root / path

    async def read(self, path: str) -> str:
        # newline="" keeps CRLF notes as they are on disk
        async with aiofiles.open(self._resolve(path), encoding=self.encoding, newline="") as f:
            return await f.read()

    async def write(self, path: str, text: str) -> None:
        target = self._resolve(path)
        await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)

        # Write to temp, then rename, so a crash never leaves half a note
        temp_path = target.with_suffix(target.suffix + ".tmp")
        async with aiofiles.open(temp_path, mode="w", encoding=self.encoding, newline="") as f:
            await f.write(text)
        await asyncio.to_thread(temp_path.replace, target)

    async def list(self) -> list[str]:
        """All markdown files, skipping hidden directories such as .obsidian."""
        return await asyncio.to_thread(self._list_markdown)

    def _list_markdown(self) -> list[str]:
        paths = []
        for file_path in sorted(self.root.rglob("*.md")):
            relative = file_path.relative_to(self.root)
            if any(part.startswith(".") for part in relative.parts[:-1]):
                continue
            paths.append(relative.as_posix())
        return paths


class LineRewrite(Protocol):
    """Strategy applied to a note's lines once the target line is found."""

    def rewrite(self, lines: list[str], index: int) -> list[str]: ...


class DeleteLine:
    def rewrite(self, lines: list[str], index: int) -> list[str]:
        return lines[:index] + lines[index + 1:]


class MarkDone:
    """Flip the checkbox to done, leaving the rest of the line untouched."""

    def rewrite(self, lines: list[str], index: int) -> list[str]:
        line = lines[index]
        match = TodoRegularExpressions.checkbox_prefix_regex.match(line)
        if match is None:
            logger.debug(f"No checkbox found in line: {line!r}")
            return lines

        updated = line[:match.start(2)] + TodoStatus.DONE + line[match.end(2):]
        return lines[:index] + [updated] + lines[index + 1:]


class Resync:
    """Replace everything after the checkbox with a fresh serialization."""

    def __init__(self, serializer: TodoSerializer, todo: Todo):
        self.serializer = serializer
        self.todo = todo

    def rewrite(self, lines: list[str], index: int) -> list[str]:
        line = lines[index]
        match = TodoRegularExpressions.checkbox_prefix_regex.match(line)
        if match is None:
            logger.debug(f"No checkbox found in line: {line!r}")
            return lines

        status = self.todo.status or match.group(2)
        updated = f"{match.group(1)}{status}] {self.serializer.serialize(self.todo)}"
        return lines[:index] + [updated] + lines[index + 1:]


def make_block_id(text: str) -> str:
    """
    Derive a block ID from the task text.

    First 16 hex digits of the SHA-256 digest, in uppercase base 36, padded
    to a fixed width.
    """
    value = int(hashlib.sha256(text.encode("utf-8")).hexdigest()[:16], 16)
    digits = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    encoded = ""
    while value:
        value, remainder = divmod(value, 36)
        encoded = digits[remainder] + encoded
    return (encoded or "0").zfill(BLOCK_ID_WIDTH)


def split_lines(text: str) -> tuple[list[str], str]:
    """Split a note into lines, returning the line ending it uses."""
    newline = "\r\n" if "\r\n" in text else "\n"
    return text.split(newline), newline


class VaultTasks:
    """
    Tasks in the vault, keyed by block ID.

    Only lines with a start date are synced; the start date decides whether a
    task falls inside the sync window.
    """

    def __init__(
        self,
        storage: VaultStorage,
        serializer: Optional[TodoSerializer] = None,
        cursor: Optional[CursorLocator] = None
    ):
        """
        Args:
            storage: Note file access
            serializer: Line codec (default: TodoSerializer())
            cursor: Reports the line under active edit, skipped in auto mode
        """
        self.storage = storage
        self.serializer = serializer or TodoSerializer()
        self.cursor = cursor
        self._lock = asyncio.Lock()

    async def list_tasks(
        self,
        window_start: Optional[datetime],
        mode: str = "auto",
        assign_ids: bool = True
    ) -> list[Todo]:
        """
        Collect every task starting on or after window_start's day.

        Tasks without a block ID get one, written back to their file before
        they are returned. In "auto" mode a task without a block ID on the
        line under the cursor is skipped so the user's typing is not
        disturbed.

        Args:
            window_start: Earliest relevant moment
            mode: "auto" for scheduled passes, "manual" for user-triggered ones
            assign_ids: If False, new block IDs are computed but not written
        """
        todos = []
        for path in await self.storage.list():
            todos.extend(await self._scan_file(path, window_start, mode, assign_ids))
        logger.debug(f"Found {len(todos)} tasks in vault")
        return todos

    async def _scan_file(
        self,
        path: str,
        window_start: Optional[datetime],
        mode: str,
        assign_ids: bool
    ) -> list[Todo]:
        editing = None
        if mode == "auto" and self.cursor is not None:
            location = self.cursor()
            if location is not None and location[0] == path:
                editing = location[1]

        todos = []
        async with self._lock:
            lines, newline = split_lines(await self.storage.read(path))
            changed = False

            for index, line in enumerate(lines):
                match = TodoRegularExpressions.todo_regex.match(line)
                if match is None:
                    continue

                status, text = match.group(3), match.group(4)
                details = self.serializer.deserialize(text)
                if not self._in_window(details, window_start):
                    continue

                if not details.block_id:
                    if index == editing:
                        logger.debug(f"Task is being edited, skipping: {path}:{index + 1}")
                        continue
                    details.block_id = make_block_id(text)
                    if assign_ids:
                        lines[index] = f"{line.rstrip()} ^{details.block_id}"
                        changed = True
                        logger.info(f"Assigned block ID ^{details.block_id} to '{details.content}' in {path}")

                todos.append(details.to_todo(status=status, source_path=path))

            if changed:
                await self.storage.write(path, newline.join(lines))

        return todos

    @staticmethod
    def _in_window(details: TodoDetails, window_start: Optional[datetime]) -> bool:
        start = parse_moment(details.start_date_time)
        if start is None:
            return False
        if window_start is None:
            return True
        return start >= start_of_day(window_start.astimezone())

    async def locate_and_update(self, todo: Todo, rewrite: LineRewrite) -> bool:
        """
        Apply rewrite to the line holding the todo's block ID.

        A missing file or line is logged and skipped: notes change under a
        sync pass.

        Returns:
            True if the file was rewritten

        Raises:
            InvalidReferenceError: if the todo lacks source path or block ID
        """
        if not todo.source_path or not todo.block_id:
            raise InvalidReferenceError(
                f"Todo '{todo.content}' has invalid path ({todo.source_path}) "
                f"or block ID ({todo.block_id})"
            )

        marker = re.compile(r"\^" + re.escape(todo.block_id) + r"(?![0-9A-Za-z])")

        async with self._lock:
            try:
                text = await self.storage.read(todo.source_path)
            except FileNotFoundError:
                logger.warning(f"No file {todo.source_path} for todo '{todo.content}'")
                return False

            lines, newline = split_lines(text)
            target = next((i for i, line in enumerate(lines) if marker.search(line)), None)
            if target is None:
                logger.warning(
                    f"Cannot find ^{todo.block_id} for todo '{todo.content}' in {todo.source_path}"
                )
                return False

            updated = rewrite.rewrite(lines, target)
            await self.storage.write(todo.source_path, newline.join(updated))
        return True

    async def delete_todo(self, todo: Todo) -> bool:
        return await self.locate_and_update(todo, DeleteLine())

    async def patch_todo(self, todo: Todo, rewrite: LineRewrite) -> bool:
        return await self.locate_and_update(todo, rewrite)

    async def mark_done(self, todo: Todo) -> bool:
        return await self.locate_and_update(todo, MarkDone())

    async def update_todo(self, todo: Todo) -> bool:
        """Rewrite the todo's line from its current fields."""
        return await self.locate_and_update(todo, Resync(self.serializer, todo))
