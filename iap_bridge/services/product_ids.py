"""
Product identifier source.

Reads the bundled list of product identifiers once. A missing or
unreadable file yields None, which callers surface as
NoProductIdentifiersFoundError.
"""

import json
import plistlib
import threading
from pathlib import Path

from pydantic import TypeAdapter, ValidationError
from structlog import get_logger

logger = get_logger(__name__)

_PRODUCT_IDS = TypeAdapter(list[str])


class ProductIdentifierSource:
    """Load-once, read-only list of product identifiers (.plist or .json array)."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._loaded = False
        self._product_ids: tuple[str, ...] | None = None

    def _read(self) -> tuple[str, ...] | None:
        try:
            raw = self.path.read_bytes()
            if self.path.suffix.lower() == ".plist":
                data = plistlib.loads(raw)
            else:
                data = json.loads(raw)
            product_ids = _PRODUCT_IDS.validate_python(data)
        except FileNotFoundError:
            logger.warning("product_ids_file_missing", path=str(self.path))
            return None
        except (OSError, ValueError, plistlib.InvalidFileException, ValidationError) as exc:
            logger.error("product_ids_file_unreadable", path=str(self.path), error=str(exc))
            return None

        # Preserve file order, drop blanks and duplicates
        cleaned = tuple(dict.fromkeys(pid.strip() for pid in product_ids if pid.strip()))
        logger.info("product_ids_loaded", path=str(self.path), count=len(cleaned))
        return cleaned

    def get_product_ids(self) -> tuple[str, ...] | None:
        """Return the identifiers, or None if the file is missing or unreadable."""
        with self._lock:
            if not self._loaded:
                self._product_ids = self._read()
                self._loaded = True
            return self._product_ids
