"""Progress extraction from heterogeneous rclone output.

rclone reports progress in three shapes depending on flags and version:

- JSON log records (``--use-json-log``) with a ``stats`` object,
- the ``Transferred:`` summary line of ``-P`` / ``--stats`` text output,
- per-file lines such as `` * movie.mkv: 45% /1.234Gi, 10.2Mi/s, 1m2s``.

Each shape has its own recognizer. Recognizers are tried in the fixed order of
``RECOGNIZERS`` and the first match wins. Output that matches nothing yields
``None``; callers keep the previous progress.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, NamedTuple

PROGRESS_PARSER_VERSION = "v2"

TRANSFERRED_MARKER = "Transferred:"

_UNIT_MULTIPLIERS: dict[str, int] = {
    "b": 1,
    "byte": 1,
    "bytes": 1,
    "k": 1024,
    "kb": 1024,
    "kbyte": 1024,
    "ki": 1024,
    "kib": 1024,
    "m": 1024**2,
    "mb": 1024**2,
    "mbyte": 1024**2,
    "mi": 1024**2,
    "mib": 1024**2,
    "g": 1024**3,
    "gb": 1024**3,
    "gbyte": 1024**3,
    "gi": 1024**3,
    "gib": 1024**3,
    "t": 1024**4,
    "tb": 1024**4,
    "tbyte": 1024**4,
    "ti": 1024**4,
    "tib": 1024**4,
}

_SIZE_EXPRESSION = re.compile(r"^\s*(\d+(?:\.\d*)?|\.\d+)\s*([A-Za-z]*)")

# (transferred, total) field names in lookup order after the primary pair.
_PRIMARY_COUNTERS = ("bytes", "totalBytes")
_ALTERNATE_COUNTERS: tuple[tuple[str, str], ...] = (
    ("bytesTransferred", "bytesTotal"),
    ("transferred_bytes", "total_bytes"),
)
_COMPLETION_LEVELS = frozenset({"info", "notice"})
_COMPLETION_MESSAGE_PREFIXES = ("Copied", "Moved", "Updated")


@dataclass(slots=True, frozen=True)
class TransferProgress:
    """Normalized progress triple."""

    percent: float
    transferred: int
    total: int


ProgressUnit = str | Mapping[str, Any]


class Recognizer(NamedTuple):
    name: str
    match: Callable[[ProgressUnit], TransferProgress | None]


def parse_byte_size(value: str) -> int:
    """Convert ``"1.234 MByte"``, ``"1.2Gi"`` or ``"123"`` to bytes.

    Binary multiples are used for every unit. A missing unit means bytes, an
    unknown unit falls back to multiplier 1, an unparsable number gives 0.
    """

    size = _byte_size(value)
    return 0 if size is None else size


def match_structured_record(unit: ProgressUnit) -> TransferProgress | None:
    """Recognize one rclone JSON log record."""

    record = _as_record(unit)
    if record is None:
        return None

    counters = _find_counters(record)
    if counters is not None:
        transferred, total, container = counters
        return TransferProgress(
            percent=_record_percent(transferred, total, container),
            transferred=transferred,
            total=total,
        )
    return _single_file_completion(record)


def match_transferred_line(unit: ProgressUnit) -> TransferProgress | None:
    """Recognize ``Transferred: 1.2 MByte / 5.6 MByte, 21%, ...``."""

    if not isinstance(unit, str):
        return None
    marker_at = unit.find(TRANSFERRED_MARKER)
    if marker_at == -1:
        return None
    after_marker = unit[marker_at + len(TRANSFERRED_MARKER) :]
    percent_at = after_marker.find("%")
    if percent_at == -1:
        return None

    # The file-count variant ("Transferred: 3 / 10, 30%") carries no rate field.
    if after_marker.count(",") < 2:
        return None

    percent = _as_percent(re.split(r"[ ,]", after_marker[:percent_at])[-1])
    if percent is None:
        return None

    pair = _transferred_pair(after_marker.strip())
    if pair is None:
        return None
    transferred, total = pair
    return TransferProgress(percent=percent, transferred=transferred, total=total)


def match_file_line(unit: ProgressUnit) -> TransferProgress | None:
    """Recognize a per-file line ``name: 45% /1.23MB, 456kB/s, 2s``."""

    if not isinstance(unit, str) or ": " not in unit or "% /" not in unit:
        return None
    after_colon = unit[unit.find(": ") + 2 :]
    percent_end = after_colon.find("% /")
    if percent_end == -1:
        return None
    percent = _as_percent(after_colon[:percent_end])
    if percent is None:
        return None

    after_percent = after_colon[percent_end + 3 :]
    comma_at = after_percent.find(",")
    if comma_at == -1:
        return None
    total = _byte_size(after_percent[:comma_at].strip())
    if total is None:
        return None
    return TransferProgress(
        percent=percent,
        transferred=round(percent / 100.0 * total),
        total=total,
    )


RECOGNIZERS: tuple[Recognizer, ...] = (
    Recognizer("structured_record", match_structured_record),
    Recognizer("transferred_line", match_transferred_line),
    Recognizer("file_line", match_file_line),
)


def extract_progress(unit: ProgressUnit) -> TransferProgress | None:
    """Return progress carried by one output unit, or ``None``."""

    for recognizer in RECOGNIZERS:
        progress = recognizer.match(unit)
        if progress is not None:
            return progress
    return None


def last_progress(units: Iterable[ProgressUnit]) -> TransferProgress | None:
    """Fold output units and return the most recent recognized progress."""

    latest: TransferProgress | None = None
    for unit in units:
        progress = extract_progress(unit)
        if progress is not None:
            latest = progress
    return latest


def _as_record(unit: ProgressUnit) -> Mapping[str, Any] | None:
    if isinstance(unit, Mapping):
        return unit
    text = unit.strip()
    # Log lines may carry a "[HH:MM:SS] " prefix in front of the JSON object.
    start = text.find("{")
    if start == -1 or not text.endswith("}"):
        return None
    try:
        parsed = json.loads(text[start:])
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def _find_counters(
    record: Mapping[str, Any],
) -> tuple[int, int, Mapping[str, Any]] | None:
    stats = record.get("stats")
    containers: list[Mapping[str, Any]] = []
    if isinstance(stats, Mapping):
        containers.append(stats)
    containers.append(record)

    for container in containers:
        found = _counter_pair(container, _PRIMARY_COUNTERS)
        if found is not None:
            return (*found, container)
    for names in _ALTERNATE_COUNTERS:
        for container in containers:
            found = _counter_pair(container, names)
            if found is not None:
                return (*found, container)
    return None


def _counter_pair(container: Mapping[str, Any], names: tuple[str, str]) -> tuple[int, int] | None:
    transferred = _as_count(container.get(names[0]))
    total = _as_count(container.get(names[1]))
    if transferred is None or total is None:
        return None
    return transferred, total


def _as_count(value: object) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return max(0, int(value))


def _as_percent(token: str) -> float | None:
    try:
        percent = float(token.strip())
    except ValueError:
        return None
    if not math.isfinite(percent):
        return None
    return min(100.0, max(0.0, percent))


def _byte_size(value: str) -> int | None:
    """Bytes for a size expression; ``None`` when the number is not finite."""

    match = _SIZE_EXPRESSION.match(value)
    if match is None:
        return 0
    unit = match.group(2).lower()
    multiplier = _UNIT_MULTIPLIERS.get(unit, 1) if unit else 1
    size = float(match.group(1)) * multiplier
    if not math.isfinite(size):
        return None
    return max(0, round(size))


def _record_percent(transferred: int, total: int, container: Mapping[str, Any]) -> float:
    transfers = _as_count(container.get("transfers")) or 0
    transferring = container.get("transferring") or []
    # rclone may round the last stats tick below 100 although nothing is left.
    if transferred == total and transfers >= 1 and not transferring:
        return 100.0
    if total <= 0:
        return 0.0
    return round(min(transferred, total) / total * 100.0, 2)


def _single_file_completion(record: Mapping[str, Any]) -> TransferProgress | None:
    level = record.get("level")
    message = record.get("msg")
    size = _as_count(record.get("size"))
    if not isinstance(level, str) or level.lower() not in _COMPLETION_LEVELS:
        return None
    if not isinstance(message, str) or not message.startswith(_COMPLETION_MESSAGE_PREFIXES):
        return None
    if size is None:
        return None
    return TransferProgress(percent=100.0, transferred=size, total=size)


def _transferred_pair(after_marker: str) -> tuple[int, int] | None:
    if " / " not in after_marker:
        return 0, 0
    transferred_part, remaining = after_marker.split(" / ", 1)
    comma_at = remaining.find(",")
    percent_at = remaining.find("%")
    if comma_at != -1:
        total_part = remaining[:comma_at]
    elif percent_at != -1:
        head, _, _ = remaining[:percent_at].rpartition(" ")
        total_part = head or remaining[:percent_at]
    else:
        total_part = remaining
    transferred = _byte_size(transferred_part.strip())
    total = _byte_size(total_part.strip())
    if transferred is None or total is None:
        return None
    return transferred, total
