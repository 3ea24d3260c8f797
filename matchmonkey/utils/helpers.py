"""Helper utility functions for MatchMonkey"""

import os
import sys
import fcntl
import atexit
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def print_banner():
    banner = r"""
  __  __       _       _     __  __             _
 |  \/  | __ _| |_ ___| |__ |  \/  | ___  _ __ | | _____ _   _
 | |\/| |/ _` | __/ __| '_ \| |\/| |/ _ \| '_ \| |/ / _ \ | | |
 | |  | | (_| | || (__| | | | |  | | (_) | | | |   <  __/ |_| |
 |_|  |_|\__,_|\__\___|_| |_|_|  |_|\___/|_| |_|_|\_\___|\__, |
                                                         |___/
    """
    print(banner)


def release_lock(handle) -> None:
    """Drop the watch lock and remove its file."""
    if handle.closed:
        return
    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
    handle.close()
    Path(handle.name).unlink(missing_ok=True)


def acquire_lock(lock_file: Path):
    """Take the exclusive watch lock for a data directory.

    Only one ``watch`` loop may poll a server per data directory. The lock
    file holds the owner's PID and is removed again at interpreter exit.

    Args:
        lock_file: Lock file inside the data directory

    Returns:
        Open lock file handle

    Raises:
        SystemExit: If another watcher holds the lock
    """
    lock_file.parent.mkdir(parents=True, exist_ok=True)
    handle = open(lock_file, "a+")
    try:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        handle.seek(0)
        owner = handle.read().strip() or "unknown"
        handle.close()
        logger.error("Another watcher (pid %s) already holds %s", owner, lock_file)
        sys.exit(1)

    handle.seek(0)
    handle.truncate()
    handle.write(str(os.getpid()))
    handle.flush()
    atexit.register(release_lock, handle)
    return handle
