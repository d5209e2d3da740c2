"""
Scoped storage for uploaded CSV files.

An upload lives only for the duration of the import that consumes it: the
file is written under the upload directory and unlinked when the block
exits, whether the import succeeded or raised.
"""
import logging
import re
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)


def _safe_name(filename: str) -> str:
    stem = re.sub(r"[^\w\-.]", "_", Path(filename or "upload").stem).strip("_") or "upload"
    return f"{stem}_{uuid.uuid4().hex[:8]}.csv"


@contextmanager
def uploaded_csv(upload_dir: Path, filename: str, contents: bytes) -> Iterator[Path]:
    upload_dir.mkdir(parents=True, exist_ok=True)
    path = upload_dir / _safe_name(filename)
    path.write_bytes(contents)
    logger.debug("Upload stored: %s (%d bytes)", path, len(contents))
    try:
        yield path
    finally:
        path.unlink(missing_ok=True)
        logger.debug("Upload removed: %s", path)
