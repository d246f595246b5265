from __future__ import annotations

from pathlib import Path

import allure
import pytest

from rclone_jobs.orchestrator.arguments import (
    PAYLOAD_LIMIT_BYTES,
    PROGRESS_CHANNEL_LOG,
    build_arguments,
    normalize_chunk_hint,
    size_token_bytes,
)

pytestmark = [
    allure.epic("Transfer Jobs"),
    allure.feature("rclone Argument Construction"),
]

_CONFIG = Path("data/cfg/rclone.conf")


def test_default_arguments_without_chunk_hint() -> None:
    argument_set = build_arguments("/srv/media/movie.mkv", "nas", "backup", config_path=_CONFIG)

    assert argument_set.args == (
        "copy",
        "--config",
        "data/cfg/rclone.conf",
        "/srv/media/movie.mkv",
        "nas:backup",
        "-P",
        "--stats=1s",
        "--transfers=1",
        "--checkers=1",
        "--retries=3",
        "--low-level-retries=3",
        "--timeout=0",
        "--contimeout=60s",
        "--ignore-checksum",
        "--size-only",
        "--multi-thread-streams=4",
        "--multi-thread-cutoff=250M",
    )
    assert argument_set.streams == 4
    assert argument_set.protocol_chunk_size is None


def test_chunk_hint_selects_streams_from_table() -> None:
    argument_set = build_arguments("/src", "nas", "dst", "32M", config_path=_CONFIG)

    assert argument_set.streams == 6
    assert argument_set.multi_thread_cutoff == "32M"
    assert "--multi-thread-streams=6" in argument_set.args
    assert "--multi-thread-cutoff=32M" in argument_set.args
    assert "--webdav-nextcloud-chunk-size=32M" in argument_set.args


@pytest.mark.parametrize(
    ("hint", "streams"),
    [("8M", 2), ("16M", 4), ("32M", 6), ("64M", 8), ("128M", 8)],
)
def test_stream_table_is_monotonic_and_capped(hint: str, streams: int) -> None:
    assert build_arguments("/src", "nas", "", hint, config_path=_CONFIG).streams == streams


def test_protocol_chunk_is_capped_below_payload_limit() -> None:
    argument_set = build_arguments("/src", "nas", "dst", "128M", config_path=_CONFIG)

    assert argument_set.protocol_chunk_size == "96M"
    assert size_token_bytes(argument_set.protocol_chunk_size) < PAYLOAD_LIMIT_BYTES
    assert "--webdav-nextcloud-chunk-size=96M" in argument_set.args


def test_unknown_chunk_hint_uses_default_bucket() -> None:
    argument_set = build_arguments("/src", "nas", "dst", "3M", config_path=_CONFIG)

    assert argument_set.streams == 4
    assert argument_set.multi_thread_cutoff == "250M"
    assert argument_set.protocol_chunk_size is None


def test_chunk_hint_is_normalized() -> None:
    assert normalize_chunk_hint(" 32mb ") == "32M"
    assert normalize_chunk_hint("64M") == "64M"
    assert normalize_chunk_hint("") is None
    assert normalize_chunk_hint(None) is None


def test_log_channel_switches_to_json_log_file(tmp_path: Path) -> None:
    log_path = tmp_path / "job.log"
    argument_set = build_arguments(
        "/src",
        "nas",
        "dst",
        config_path=_CONFIG,
        progress_channel=PROGRESS_CHANNEL_LOG,
        log_path=log_path,
    )

    assert "--use-json-log" in argument_set.args
    assert f"--log-file={log_path}" in argument_set.args
    assert "--log-level=INFO" in argument_set.args
    assert "-P" not in argument_set.args


def test_render_quotes_paths_with_spaces() -> None:
    argument_set = build_arguments("/srv/my files", "nas", "a b", config_path=_CONFIG)

    rendered = argument_set.render(("rclone",))

    assert rendered.startswith("rclone copy --config data/cfg/rclone.conf '/srv/my files' 'nas:a b'")
    assert argument_set.command("rclone")[:2] == ["rclone", "copy"]
