"""Copy a single save file while tolerating transient locks.

A game process may hold a save file open for writing while we try to back
it up. Each attempt opens the source for shared read and copies it into a
temporary sibling of the destination, which only replaces the destination
once the copy completed. Failed attempts are retried after a delay.
"""

import logging
import os
import shutil
import tempfile
import threading
import time

import psutil

logger = logging.getLogger(__name__)


def find_lock_holder(path) -> tuple[int | None, str | None]:
    """Return pid and name of a process that has ``path`` open.

    Best effort: processes we cannot inspect are skipped, and (None, None)
    is returned if nobody is found.
    """
    target = os.path.realpath(path)
    current_pid = os.getpid()
    for proc in psutil.process_iter(["pid", "name"]):
        try:
            if proc.info["pid"] == current_pid:
                continue
            for f in proc.open_files():
                if os.path.realpath(f.path) == target:
                    return proc.info["pid"], proc.info["name"]
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return None, None


def _copy_once(src: str, dst: str):
    dst_dir = os.path.dirname(os.path.abspath(dst))
    fd, tmp_path = tempfile.mkstemp(prefix=".", suffix=".partial", dir=dst_dir)
    try:
        with os.fdopen(fd, "wb") as fdst, open(src, "rb") as fsrc:
            shutil.copyfileobj(fsrc, fdst)
        shutil.copystat(src, tmp_path)
        os.replace(tmp_path, dst)
    except BaseException:
        try:
            os.remove(tmp_path)
        except OSError:
            pass
        raise


def copy_with_retry(
    src,
    dst,
    max_attempts: int,
    retry_delay_ms: int,
    stop_event: threading.Event | None = None,
) -> bool:
    """Copy ``src`` over ``dst``, retrying up to ``max_attempts`` times.

    Returns False straight away if the source does not exist, after the
    last failed attempt, or if ``stop_event`` is set while waiting between
    attempts. ``dst`` is only ever written by a successful attempt.
    """
    src, dst = str(src), str(dst)
    delay = max(retry_delay_ms, 0) / 1000.0

    for attempt in range(1, max_attempts + 1):
        if not os.path.isfile(src):
            logger.debug("Source vanished, not copying: %s", src)
            return False
        try:
            _copy_once(src, dst)
            if attempt > 1:
                logger.info("Copied %s on attempt %d", src, attempt)
            return True
        except OSError as exc:
            logger.warning("Copy attempt %d/%d failed for %s: %s",
                           attempt, max_attempts, src, exc)

        if attempt == max_attempts:
            break
        if stop_event is not None:
            if stop_event.wait(delay):
                logger.info("Copy of %s cancelled between attempts", src)
                return False
        elif delay:
            time.sleep(delay)

    pid, pname = find_lock_holder(src)
    logger.error("Giving up on %s after %d attempt(s) (held by pid=%s, %s)",
                 src, max_attempts, pid, pname)
    return False
