"""Job orchestration for externally executed rclone transfers.

The transfer itself is delegated to the ``rclone`` binary; this package only
supervises it:

- ``arguments`` turns a transfer request into a concrete rclone argv.
- ``progress`` normalizes heterogeneous rclone output into byte counters.
- ``job_log`` keeps one append-only log per job, which doubles as the
  recovery source for progress.
- ``registry`` is the single in-memory authority on job existence and state.
- ``supervisor`` owns one job's lifecycle on a dedicated thread.
- ``services`` is the facade used by the CLI and by ``api``.
"""
