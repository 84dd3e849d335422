"""lablog configuration - Python example

Copy to your home directory as lablog_config.py.

Convention:
- CONFIG dict for static configuration (same structure as TOML)
- hook_pre_record and hook_post_record are called around every write
"""

import os
import subprocess

# =============================================================================
# Static Configuration (same structure as TOML)
# =============================================================================

CONFIG = {
    "lablog": {
        "data_dir": "~/.lablog",
    },
    "scm": {
        "backend": "git",
        "auto_commit": True,
        "auto_push": False,
        "timeout": 30,
    },
    "locking": {
        "timeout": 10,
    },
    "logging": {
        "level": "INFO",
    },
}


# =============================================================================
# Hooks - Called by the engine around each write
# =============================================================================

def hook_pre_record(record):
    """Called before a record is appended.

    Return the record to write. The returned record is validated again.
    """
    # Example: prefix notes written from a work machine
    if record.kind.value == "note" and os.environ.get("LABLOG_HOST_TAG"):
        record.text = f"[{os.environ['LABLOG_HOST_TAG']}] {record.text}"
    return record


def hook_post_record(record):
    """Called after a record was appended, before any commit."""
    if record.action == "done":
        try:
            subprocess.run(
                ["notify-send", "lablog", f"Done: {record.value}"],
                capture_output=True,
                timeout=5,
            )
        except (OSError, subprocess.TimeoutExpired):
            pass
