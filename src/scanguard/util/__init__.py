"""
Utility functions and helpers for ScanGuard.

This package provides reusable utilities:

- **logger.py**: Centralized logging configuration with colored console output,
  rotating file handlers, and per-session log aggregation. Suppresses noise from
  verbose libraries (Discord internals, urllib3, Pillow).

- **discord_utils.py**: Low-level Discord helpers: author filtering, moderator
  permission checks, duration formatting and the DM notice sent to offenders.

- **image_utils.py**: Attachment filtering and size-limited image downloads
  feeding the detection pipeline.
"""
