"""File writing helpers."""

import os
import tempfile
from pathlib import Path
from typing import Union

TEMP_SUFFIX = ".tmp"


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """
    Replace `path` with `data` using write-then-rename.

    The temporary file lives in the destination directory so the final
    os.replace() stays on one filesystem. Readers see either the old file or
    the complete new one, never a truncated write.

    Raises:
        OSError: If the directory is unwritable or the rename fails
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    # Write to temp file first (atomic write pattern)
    temp_fd, temp_path = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=TEMP_SUFFIX
    )
    try:
        with os.fdopen(temp_fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

        # Only overwrite original if write succeeded
        os.replace(temp_path, path)
    except BaseException:
        # Clean up temp file if write failed
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise


def atomic_write_text(path: Path, text: Union[str, bytes], encoding: str = "utf-8") -> None:
    """Text variant of atomic_write_bytes()."""
    data = text if isinstance(text, bytes) else text.encode(encoding)
    atomic_write_bytes(path, data)
