"""File handler module: todo file reading and crash-safe writing.

* ``read_todo_file`` reads the local file, treating a missing file as
  empty.  Content is expected to be UTF-8; other encodings are detected
  with charset-normalizer so a legacy file is still readable.
* ``write_file_atomic`` writes to a temporary sibling, fsyncs, then
  ``os.replace()``-s it over the target so readers never see a partial
  file and a failed write leaves the original untouched.

``OSError`` from either direction is raised as ``IoError``.
"""

import logging
import os
import stat
import tempfile
from pathlib import Path

from charset_normalizer import from_bytes

from .errors import IoError

logger = logging.getLogger(__name__)

# =============================================================================
# Read
# =============================================================================


def decode_bytes(raw: bytes) -> tuple[str, str]:
    """Decode file content, preferring UTF-8.

    Returns:
        Tuple of (content_string, encoding).
    """
    if not raw:
        return ("", "utf-8")
    try:
        return (raw.decode("utf-8"), "utf-8")
    except UnicodeDecodeError:
        pass

    result = from_bytes(raw).best()
    if result is None:
        # Detection failed, keep what we can
        return (raw.decode("utf-8", errors="replace"), "utf-8")
    logger.warning(
        "Todo file is not UTF-8, decoded as %s; it will be rewritten as UTF-8",
        result.encoding,
    )
    return (str(result), result.encoding)


def read_todo_file(path: Path) -> str:
    """Read the local todo file.

    Args:
        path: Path to the todo.txt file.

    Returns:
        File content, or ``""`` if the file does not exist yet.

    Raises:
        IoError: If the file exists but cannot be read.
    """
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        logger.info("Todo file %s does not exist yet", path)
        return ""
    except OSError as exc:
        raise IoError(f"Couldn't read todo file {path}: {exc}") from exc

    content, _ = decode_bytes(raw)
    return content


# =============================================================================
# Write
# =============================================================================


def write_file_atomic(
    path: Path, content: str, encoding: str = "utf-8"
) -> int:
    """Atomically replace *path* with *content*.

    Writes to a temporary file in the same directory, flushes and fsyncs
    it, then renames it over the target.  Parent directories are created
    and the existing file's permission bits are kept.

    Args:
        path: Path to the output file.
        content: String content to write.
        encoding: Encoding to use (default: utf-8).

    Returns:
        Number of bytes written.

    Raises:
        IoError: If any step fails.  The original file is left as it was.
    """
    encoded = content.encode(encoding)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        mode = stat.S_IMODE(path.stat().st_mode) if path.exists() else None
        fd, tmp_path = tempfile.mkstemp(
            dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
        )
    except OSError as exc:
        raise IoError(f"Couldn't prepare write of {path}: {exc}") from exc

    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(encoded)
            fh.flush()
            os.fsync(fh.fileno())
        if mode is not None:
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException as exc:
        # Clean up temp file on any failure.
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        if isinstance(exc, OSError):
            raise IoError(f"Couldn't write todo file {path}: {exc}") from exc
        raise

    logger.debug("Wrote %d bytes to %s", len(encoded), path)
    return len(encoded)
