"""Supervise rclone transfer jobs and expose their live progress."""

__version__ = "0.1.0"
