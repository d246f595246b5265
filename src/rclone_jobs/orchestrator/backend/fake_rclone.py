"""Stand-in transfer tool for supervisor integration tests.

Accepts rclone ``copy`` arguments, ignores unknown flags and prints progress in
the same shapes rclone does. Behaviour is driven by environment variables:

- ``FAKE_RCLONE_EXIT_CODE``: exit status (default 0),
- ``FAKE_RCLONE_STEPS``: number of progress ticks (default 3),
- ``FAKE_RCLONE_DELAY``: seconds between ticks (default 0.05),
- ``FAKE_RCLONE_TOTAL_BYTES``: simulated payload size,
- ``FAKE_RCLONE_HANG``: sleep this many seconds after the first tick.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
import time
from datetime import UTC, datetime
from pathlib import Path

_MIB = 1024 * 1024


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="fake-rclone")
    parser.add_argument("command")
    parser.add_argument("--config", default=None)
    parser.add_argument("--log-file", default=None)
    parser.add_argument("--use-json-log", action="store_true")
    args, _unknown = parser.parse_known_args(argv)

    exit_code = int(os.getenv("FAKE_RCLONE_EXIT_CODE", "0"))
    steps = max(1, int(os.getenv("FAKE_RCLONE_STEPS", "3")))
    delay = float(os.getenv("FAKE_RCLONE_DELAY", "0.05"))
    total = int(os.getenv("FAKE_RCLONE_TOTAL_BYTES", str(6 * _MIB)))
    hang_seconds = float(os.getenv("FAKE_RCLONE_HANG", "0"))

    json_log = Path(args.log_file) if args.use_json_log and args.log_file else None

    for step in range(1, steps + 1):
        done = total * step // steps
        if json_log is not None:
            _emit_json(json_log, done=done, total=total, finished=step == steps)
        else:
            _emit_text(done=done, total=total)
        if step == 1 and hang_seconds > 0:
            time.sleep(hang_seconds)
        time.sleep(delay)

    if exit_code != 0:
        sys.stderr.write("ERROR : Attempt 3/3 failed with 1 errors\n")
        sys.stderr.flush()
    return exit_code


def _emit_text(*, done: int, total: int) -> None:
    percent = done * 100 // total if total else 0
    sys.stderr.write("some unrelated rclone notice\n")
    sys.stderr.write(
        f"Transferred:   \t{done / _MIB:.3f} MiB / {total / _MIB:.3f} MiB, "
        f"{percent}%, 1.000 MiB/s, ETA 1s\n",
    )
    sys.stderr.write(f" *   payload.bin: {percent}% /{total / _MIB:.3f}Mi, 1.000Mi/s, 1s\n")
    sys.stderr.flush()


def _emit_json(path: Path, *, done: int, total: int, finished: bool) -> None:
    record = {
        "level": "info",
        "msg": "Transferred: progress tick",
        "source": "accounting/stats.go:500",
        "time": datetime.now(tz=UTC).isoformat(),
        "stats": {
            "bytes": done,
            "totalBytes": total,
            "transfers": 1 if finished else 0,
        },
    }
    if not finished:
        record["stats"]["transferring"] = [{"name": "payload.bin", "bytes": done, "size": total}]
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(record) + "\n")
        handle.flush()


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
