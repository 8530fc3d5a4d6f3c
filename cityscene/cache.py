"""Last-response cache: the most recent successful raw response, for replay."""

import logging
import os
import pathlib

from .constants import LAST_RESPONSE_PATH

logger = logging.getLogger(__name__)


class ResponseCache:
    def __init__(self, path: str | os.PathLike | None = None):
        self.path = pathlib.Path(path) if path is not None else LAST_RESPONSE_PATH

    def load(self) -> str | None:
        """Cached response text, or None when nothing is stored."""
        if not self.path.exists():
            return None
        try:
            return self.path.read_text(encoding='utf-8')
        except OSError as e:
            logger.warning(f"Cannot read cached response {self.path}: {e}")
            return None

    def store(self, raw) -> None:
        """Replace the cached response; the write is atomic."""
        data = raw.decode('utf-8') if isinstance(raw, (bytes, bytearray)) else raw
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + '.tmp')
        tmp.write_text(data, encoding='utf-8')
        os.replace(tmp, self.path)
        size_kb = len(data) / 1024
        logger.info(f"Saved last response to {self.path} ({size_kb:.1f} KB)")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
