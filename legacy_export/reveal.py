"""Show a finished export in the platform's file browser.

Best effort only: a headless host, a missing launcher or a failing launcher
is logged and reported as ``False``, never raised.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from pathlib import Path

logger = logging.getLogger("legacy_export.reveal")


def _reveal_command(path: Path) -> list[str]:
    """Platform-specific command that opens a file browser at *path*."""
    if sys.platform.startswith("win"):
        return ["explorer", f"/select,{path}"]
    if sys.platform == "darwin":
        return ["open", "-R", str(path)]
    # xdg-open cannot select a file, so open its directory instead
    return ["xdg-open", str(path.parent)]


def reveal_in_file_browser(path: Path) -> bool:
    """Launch the native file browser for *path* without waiting for it.

    Returns True if the launcher was started.
    """
    cmd = _reveal_command(Path(path))
    try:
        subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError as exc:
        logger.warning("Could not reveal %s with %s: %s", path, cmd[0], exc)
        return False
    logger.info("Revealed export %s", path)
    return True
