"""Todo.txt line codec.

Parses todo.txt text into ``TodoRecord`` values and renders them back.
The codec is a pure transform: it never decides anything about sync.

Line grammar::

    [x ][(P) ][DATE ][DATE ]description +project @context key:value

For completed lines the first date is the completion date and the
optional second one the creation date.  Open lines carry at most one
date (the creation date).

Lines that cannot be parsed are not fatal: ``parse()`` keeps them as
pass-through records that are written back verbatim.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Collection, Iterable, Iterator
from datetime import date

from ..errors import FormatError
from .models import ID_TAG, Tag, TagKind, TodoRecord

logger = logging.getLogger(__name__)

# A tag starts at the beginning of the text or after whitespace.
TAG_PATTERN = re.compile(
    r"(?<!\S)(?P<tag>(?P<head>@|\+|(?P<key>\w+):)(?P<body>\S+))\b"
)
_PRIORITY_PATTERN = re.compile(r"^\((?P<pri>[A-Z])\)\s+")
_DATE_SHAPE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
# Description prefixes that could be read back as line structure.
_START_BODY = (
    r"(?:(?P<done>x(?:\s|$))|(?P<pri>\([A-Z]\)\s)|(?P<date>\d{4}-\d{2}-\d{2}(?:\s|$)))"
)
_AMBIGUOUS_START = re.compile("^" + _START_BODY)
_GUARDED_START = re.compile(r"^\\+" + _START_BODY)


# ------------------------------------------------------------------
# Tags
# ------------------------------------------------------------------


def find_tags(description: str) -> Iterator[Tag]:
    """Yield the tags of *description* in order of appearance."""
    for match in TAG_PATTERN.finditer(description):
        head = match.group("head")
        body = match.group("body")
        if head == "@":
            yield Tag(TagKind.CONTEXT, body)
        elif head == "+":
            yield Tag(TagKind.PROJECT, body)
        else:
            yield Tag(TagKind.DATA, match.group("key"), body)


def escape_meta(text: str, keys: Collection[str] | None = None) -> str:
    """Escape tag-shaped tokens so they are not read back as tags.

    A backslash goes before the ``@``, ``+`` or ``:`` of every token that
    would otherwise parse as a tag: ``id:9`` becomes ``id\\:9``.

    Args:
        text: Text to escape.
        keys: If given, only ``key:value`` tokens with these keys are
            escaped; projects, contexts and other keys are left alone.
    """

    def _escape(match: re.Match) -> str:
        head = match.group("head")
        if keys is not None and match.group("key") not in keys:
            return match.group(0)
        return head[:-1] + "\\" + head[-1] + match.group("body")

    return TAG_PATTERN.sub(_escape, text)


def guard_line_start(
    text: str, *, completed: bool = False, priority: bool = False, dates: int = 0
) -> str:
    """Escape a description that would be read back as line structure.

    ``completed``, ``priority`` and ``dates`` describe what the rendered
    line puts in front of the description.  A title such as
    ``x marks the spot`` is only a completion marker at the very start of
    an open line, while ``2024-05-05 standup`` is read as a date on any
    open line and on completed lines with fewer than two dates.

    Text that already starts with a guard gets one more backslash, so
    ``parse_line()`` can always strip exactly one.
    """
    if _GUARDED_START.match(text):
        return "\\" + text
    match = _AMBIGUOUS_START.match(text)
    if match is None:
        return text
    if match.group("date"):
        clash = not completed or dates < 2
    elif match.group("pri"):
        clash = not priority and dates == 0
    else:
        clash = not completed and not priority and dates == 0
    return "\\" + text if clash else text


# ------------------------------------------------------------------
# Parsing
# ------------------------------------------------------------------


def _take_date(text: str, line: str) -> tuple[date | None, str]:
    """Split a leading date off *text*.

    Returns ``(date, rest)``, or ``(None, text)`` when *text* does not
    start with a date-shaped token.

    Raises:
        FormatError: If the token looks like a date but is not a valid one.
    """
    parts = text.split(None, 1)
    if not parts or not _DATE_SHAPE.match(parts[0]):
        return None, text
    try:
        parsed = date.fromisoformat(parts[0])
    except ValueError:
        raise FormatError(f"Invalid date '{parts[0]}'", line) from None
    return parsed, parts[1] if len(parts) > 1 else ""


def parse_line(line: str) -> TodoRecord:
    """Parse one todo.txt line.

    Args:
        line: The line, without its line terminator.

    Returns:
        The parsed record, with ``raw_line`` set to *line*.

    Raises:
        FormatError: If the line has an invalid date, two dates on an open
            task, or no description.
    """
    rest = line.strip()
    completed = False
    priority: str | None = None
    creation: date | None = None
    completion: date | None = None

    if rest == "x" or rest.startswith("x "):
        completed = True
        rest = rest[1:].lstrip()

    match = _PRIORITY_PATTERN.match(rest)
    if match:
        priority = match.group("pri")
        rest = rest[match.end():]

    first, rest = _take_date(rest, line)
    if first is not None:
        second, rest = _take_date(rest, line)
        if completed:
            completion, creation = first, second
        elif second is not None:
            raise FormatError(
                "Completion date present on uncompleted todo", line
            )
        else:
            creation = first

    description = rest.strip()
    if not description:
        raise FormatError("Todo has no description", line)
    if _GUARDED_START.match(description):
        description = description[1:]

    external_id = None
    for tag in find_tags(description):
        if tag.kind == TagKind.DATA and tag.key == ID_TAG:
            external_id = tag.value
            break

    return TodoRecord(
        description=description,
        completed=completed,
        priority=priority,
        creation_date=creation,
        completion_date=completion,
        external_id=external_id,
        raw_line=line,
    )


def passthrough_record(line: str, reason: str) -> TodoRecord:
    """Wrap an unparseable line so it survives the sync verbatim."""
    return TodoRecord(
        description=line,
        passthrough=True,
        raw_line=line,
        parse_error=reason,
    )


def parse(text: str) -> list[TodoRecord]:
    """Parse a whole todo.txt file.

    Only a line feed, optionally preceded by a carriage return, ends a
    line.  Form feeds and the other separators ``str.splitlines()``
    honours stay part of the line.
    Blank lines are skipped.  Lines that fail to parse become
    pass-through records and are logged; they never abort the parse.
    """
    records: list[TodoRecord] = []
    for lineno, line in enumerate(text.lstrip("\ufeff").split("\n"), 1):
        line = line.removesuffix("\r")
        if not line.strip():
            continue
        try:
            records.append(parse_line(line))
        except FormatError as exc:
            logger.warning(
                "Line %d kept verbatim (%s): %s", lineno, exc, line
            )
            records.append(passthrough_record(line, str(exc)))
    return records


# ------------------------------------------------------------------
# Rendering
# ------------------------------------------------------------------


def render(record: TodoRecord) -> str:
    """Render *record* as a todo.txt line, ignoring ``raw_line``.

    Completed records never carry a priority.  A description that would
    be read back as a marker, priority or date is guarded with a
    backslash, which ``parse_line()`` removes again.

    Raises:
        ValueError: If a completed record has no completion date.  A
            completed line without dates can only be written back
            verbatim from its ``raw_line``.
    """
    if record.passthrough:
        return record.raw_line if record.raw_line is not None else record.description

    parts: list[str] = []
    dates = 0
    if record.completed:
        if record.completion_date is None:
            raise ValueError(
                f"Completed todo has no completion date: {record.description!r}"
            )
        parts += ["x", record.completion_date.isoformat()]
        dates += 1
    elif record.priority:
        parts.append(f"({record.priority})")
    if record.creation_date is not None:
        parts.append(record.creation_date.isoformat())
        dates += 1
    parts.append(
        guard_line_start(
            record.description,
            completed=record.completed,
            priority=bool(record.priority) and not record.completed,
            dates=dates,
        )
    )
    return " ".join(parts)


def serialize(records: Iterable[TodoRecord]) -> str:
    """Serialize *records* to file content, one line each.

    Unmodified records (``raw_line`` set) are written back verbatim.
    """
    lines = [
        r.raw_line if r.raw_line is not None else render(r) for r in records
    ]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"
