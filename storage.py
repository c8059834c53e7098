import logging
import re
import time
from pathlib import Path
from typing import Iterable, Optional

import aiofiles

from config import Config

logger = logging.getLogger(__name__)

PARTITIONS = ("uploads", "uploads/backgrounds", "downloads", "watermarks", "temp")

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]")


def public_dir() -> Path:
    return Config.PUBLIC_DIR


def ensure_directories():
    """Create the public tree partitions if they are missing."""
    for partition in PARTITIONS:
        (public_dir() / partition).mkdir(parents=True, exist_ok=True)


def sanitize_name(name: str) -> str:
    return _UNSAFE_CHARS.sub("_", name)


def timestamp_ms() -> int:
    return int(time.time() * 1000)


def file_extension(filename: Optional[str], default: str = "bin") -> str:
    if filename and "." in filename:
        return filename.rsplit(".", 1)[1].lower()
    return default


def public_url(path: Path) -> str:
    return "/" + path.relative_to(public_dir()).as_posix()


def resolve_public_path(url: Optional[str]) -> Optional[Path]:
    """Map a public url path (e.g. /uploads/x.png) to a file inside the public tree.

    Remote urls, paths escaping the tree and missing files resolve to None.
    """
    if not url or "://" in url:
        return None
    root = public_dir().resolve()
    candidate = (root / url.lstrip("/")).resolve()
    if root not in candidate.parents:
        return None
    if not candidate.is_file():
        return None
    return candidate


def first_existing(stem: Path, extensions: Iterable[str]) -> Optional[Path]:
    for ext in extensions:
        candidate = stem.with_name(stem.name + ext)
        if candidate.exists():
            return candidate
    return None


async def save_bytes(relative_path: str, content: bytes) -> Path:
    """Write content under the public tree and return the absolute path."""
    target = public_dir() / relative_path
    target.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(target, "wb") as f:
        await f.write(content)
    logger.info("Stored %s (%d bytes)", public_url(target), len(content))
    return target


def delete_quietly(path: Optional[Path]) -> bool:
    """Best-effort removal; failures are logged, not raised."""
    if path is None:
        return False
    try:
        if path.exists():
            path.unlink()
            return True
    except OSError:
        logger.warning("Failed to remove %s", path, exc_info=True)
    return False
