"""
HTML snapshots of generated pages.

Each finished request can be written to
<OUTPUT_CACHE_DIR>/<sanitized input>_<timestamp>.html for later inspection.
"""

import re
import time
from pathlib import Path
from typing import Optional

import aiofiles

from pagecraft.core.config import settings
from pagecraft.core.logging_config import logger

MAX_NAME_LENGTH = 50
_UNSAFE_CHARS = re.compile(r"[^\w\-]+", re.UNICODE)


def sanitize_filename(text: str) -> str:
    """Reduce free text to something usable as a file name"""
    name = _UNSAFE_CHARS.sub("_", text.strip()).strip("_")
    return name[:MAX_NAME_LENGTH] or "page"


def snapshot_path(input_text: str, output_dir: Optional[str] = None, timestamp_ms: Optional[int] = None) -> Path:
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    folder = Path(output_dir or settings.OUTPUT_CACHE_DIR)
    return folder / f"{sanitize_filename(input_text)}_{timestamp_ms}.html"


async def save_html_to_file(html: str, input_text: str, output_dir: Optional[str] = None) -> Path:
    """Write the serialized page and return where it went"""
    path = snapshot_path(input_text, output_dir)
    path.parent.mkdir(parents=True, exist_ok=True)

    async with aiofiles.open(path, "w", encoding="utf-8") as f:
        await f.write(html)

    logger.info(f"[Snapshot] HTML saved to {path}")
    return path
