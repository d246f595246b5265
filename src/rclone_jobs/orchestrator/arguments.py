"""rclone argument construction for copy jobs."""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from pathlib import Path

PROGRESS_CHANNEL_STREAM = "stream"
PROGRESS_CHANNEL_LOG = "log"
PROGRESS_CHANNELS = (PROGRESS_CHANNEL_STREAM, PROGRESS_CHANNEL_LOG)

DEFAULT_STREAMS = 4
DEFAULT_MULTI_THREAD_CUTOFF = "250M"
MAX_STREAMS = 8

# Reverse proxies in front of WebDAV endpoints commonly reject request bodies
# of 100 MiB and more with 413; chunks must stay strictly below that.
PAYLOAD_LIMIT_BYTES = 100 * 1024 * 1024
PROTOCOL_CHUNK_CEILING = "96M"

CHUNK_STREAMS: dict[str, int] = {
    "8M": 2,
    "16M": 4,
    "32M": 6,
    "64M": 8,
    "128M": 8,
}

_BASE_FLAGS: tuple[str, ...] = (
    "--transfers=1",
    "--checkers=1",
    "--retries=3",
    "--low-level-retries=3",
    "--timeout=0",
    "--contimeout=60s",
    "--ignore-checksum",
    "--size-only",
)
_SIZE_SUFFIXES = {"K": 1024, "M": 1024**2, "G": 1024**3}


@dataclass(slots=True, frozen=True)
class ArgumentSet:
    """Concrete rclone arguments plus the tuning they encode."""

    args: tuple[str, ...]
    streams: int
    multi_thread_cutoff: str
    protocol_chunk_size: str | None

    def command(self, binary: tuple[str, ...] | list[str] | str = "rclone") -> list[str]:
        head = [binary] if isinstance(binary, str) else list(binary)
        return [*head, *self.args]

    def render(self, binary: tuple[str, ...] | list[str] | str = "rclone") -> str:
        return shlex.join(self.command(binary))


def build_arguments(  # noqa: PLR0913
    source_path: str,
    remote_name: str,
    remote_path: str,
    chunk_size: str | None = None,
    *,
    config_path: Path | str,
    progress_channel: str = PROGRESS_CHANNEL_STREAM,
    log_path: Path | str | None = None,
) -> ArgumentSet:
    """Map a transfer request to rclone ``copy`` arguments.

    Concurrency is always conservative (one transfer, one checker) so small
    remote endpoints are not overwhelmed. A chunk hint selects the
    multi-thread stream count from ``CHUNK_STREAMS``; unknown hints use the
    default bucket. Never raises.
    """

    args: list[str] = [
        "copy",
        "--config",
        str(config_path),
        source_path,
        f"{remote_name}:{remote_path}",
    ]
    args.extend(_progress_flags(progress_channel=progress_channel, log_path=log_path))
    args.extend(_BASE_FLAGS)

    hint = normalize_chunk_hint(chunk_size)
    if hint is None:
        streams = DEFAULT_STREAMS
        cutoff = DEFAULT_MULTI_THREAD_CUTOFF
        protocol_chunk = None
    else:
        streams = min(CHUNK_STREAMS[hint], MAX_STREAMS)
        cutoff = hint
        protocol_chunk = cap_protocol_chunk(hint)

    args.append(f"--multi-thread-streams={streams}")
    args.append(f"--multi-thread-cutoff={cutoff}")
    if protocol_chunk is not None:
        args.append(f"--webdav-nextcloud-chunk-size={protocol_chunk}")

    return ArgumentSet(
        args=tuple(args),
        streams=streams,
        multi_thread_cutoff=cutoff,
        protocol_chunk_size=protocol_chunk,
    )


def normalize_chunk_hint(chunk_size: str | None) -> str | None:
    """Return the table key for a hint, or ``None`` for the default bucket."""

    if chunk_size is None:
        return None
    key = chunk_size.strip().upper()
    if key.endswith("B"):
        key = key[:-1]
    return key if key in CHUNK_STREAMS else None


def cap_protocol_chunk(hint: str) -> str:
    if size_token_bytes(hint) >= size_token_bytes(PROTOCOL_CHUNK_CEILING):
        return PROTOCOL_CHUNK_CEILING
    return hint


def size_token_bytes(token: str) -> int:
    """Bytes for an rclone size suffix token such as ``32M``."""

    token = token.strip().upper()
    multiplier = _SIZE_SUFFIXES.get(token[-1:], 1)
    digits = token[:-1] if token[-1:] in _SIZE_SUFFIXES else token
    try:
        return int(float(digits) * multiplier)
    except ValueError:
        return 0


def _progress_flags(*, progress_channel: str, log_path: Path | str | None) -> list[str]:
    if progress_channel == PROGRESS_CHANNEL_LOG and log_path is not None:
        return [
            "--use-json-log",
            f"--log-file={log_path}",
            "--log-level=INFO",
            "--stats=1s",
        ]
    return ["-P", "--stats=1s"]
