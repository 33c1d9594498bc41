"""Metadata extraction for Lantern.

This module decides how a freshly read source file is interpreted: whether its
bytes are binary, and which metadata its YAML front matter carries. Recognized
front matter keys are merged onto the File; everything stays available in
`File.front_matter` for templates.

Key functions:
- is_binary: Sniff raw bytes for binary content.
- extract_frontmatter: Split a YAML front matter block from text.
- parse_front_matter: Apply front matter to a File.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from .content import File
from .errors import FrontMatterError

FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(?:(.*?)\r?\n)?---[ \t]*(?:\r?\n|\Z)", re.DOTALL)

# Number of leading bytes inspected when sniffing binary content.
SNIFF_SIZE = 8000

_DATE_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d")


def is_binary(raw: bytes) -> bool:
    """Check whether raw bytes look like binary content.

    A NUL byte in the sniffed prefix, or a prefix that does not decode as
    UTF-8, marks the content as binary.

    Args:
        raw: Raw file bytes.

    Returns:
        True for binary content.
    """
    head = raw[:SNIFF_SIZE]
    if b"\x00" in head:
        return True
    try:
        head.decode("utf-8")
    except UnicodeDecodeError as exc:
        # A multi-byte sequence cut by the sniff window is still text.
        return not (len(raw) > SNIFF_SIZE and exc.start >= len(head) - 3)
    return False


def extract_frontmatter(text: str) -> tuple[dict[str, Any] | None, str]:
    """Extract YAML frontmatter from content.

    Args:
        text: Raw file content.

    Returns:
        Tuple of (frontmatter dict or None when absent, remaining content).

    Raises:
        FrontMatterError: If the block is not valid YAML or not a mapping.
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return None, text
    try:
        data = yaml.safe_load(match.group(1) or "")
    except yaml.YAMLError as exc:
        raise FrontMatterError(f"Invalid front matter: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise FrontMatterError("Front matter must be a mapping")
    return data, text[match.end() :]


def parse_date(value: Any, zone: str | None = None) -> datetime | None:
    """Normalize a front matter date value.

    Args:
        value: datetime, date, or string value.
        zone: Optional IANA zone name applied to naive values.

    Returns:
        datetime, or None when the value is empty.

    Raises:
        FrontMatterError: If the string cannot be parsed or the zone is unknown.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        parsed = _parse_date_string(str(value).strip())
    if zone and parsed.tzinfo is None:
        try:
            parsed = parsed.replace(tzinfo=ZoneInfo(zone))
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise FrontMatterError(f"Unknown time zone: {zone}") from exc
    return parsed


def _parse_date_string(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    raise FrontMatterError(f"Unparsable date: {value!r}")


def parse_front_matter(file: File, zone: str | None = None) -> File:
    """Parse the front matter of a loaded text file onto the record.

    Binary files are left untouched. Files without front matter keep their text
    and get no layout, which classifies them as assets.

    Args:
        file: File with `text` populated.
        zone: Default time zone for naive dates.

    Returns:
        The same File, updated in place.
    """
    if file.is_binary or file.text is None:
        return file
    front_matter, body = extract_frontmatter(file.text)
    if front_matter is None:
        return file
    file.front_matter = front_matter
    file.text = body
    file.zone = front_matter.get("zone", zone)
    file.title = _as_text(front_matter.get("title"))
    file.layout = _as_text(front_matter.get("layout"))
    file.comment = front_matter.get("comment")
    file.reward = front_matter.get("reward")
    file.language = _as_text(front_matter.get("language"))
    created = front_matter.get("createdDate", front_matter.get("date"))
    updated = front_matter.get("updatedDate", front_matter.get("updated"))
    file.created_date = parse_date(created, file.zone) or _mtime(file)
    file.updated_date = parse_date(updated, file.zone) or file.created_date
    return file


def _as_text(value: Any) -> str | None:
    return None if value is None else str(value)


def _mtime(file: File) -> datetime | None:
    if file.src_dir is None or file.src_path is None:
        return None
    path = Path(file.src_dir) / file.src_path
    try:
        stamp = path.stat().st_mtime
    except OSError:
        return None
    return datetime.fromtimestamp(stamp, tz=timezone.utc).astimezone()
