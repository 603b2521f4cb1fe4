"""In-memory store for screenshots published as MCP resources."""

from __future__ import annotations

import base64
import itertools
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import List, Optional

SCREENSHOT_SCHEME = "screenshot://"
DEFAULT_MAX_SCREENSHOTS = 50


@dataclass(frozen=True)
class Screenshot:
    name: str
    mime_type: str
    data_base64: str

    @property
    def uri(self) -> str:
        return f"{SCREENSHOT_SCHEME}{self.name}"

    def data(self) -> bytes:
        return base64.b64decode(self.data_base64)


class ScreenshotStore:
    """Keep the most recent ``max_items`` screenshots retrievable by name."""

    def __init__(self, max_items: int = DEFAULT_MAX_SCREENSHOTS) -> None:
        if max_items < 1:
            raise ValueError("max_items must be at least 1.")
        self._items: "OrderedDict[str, Screenshot]" = OrderedDict()
        self._max_items = max_items
        self._counter = itertools.count(1)

    def new_name(self, prefix: str = "screenshot") -> str:
        """Return a name no earlier screenshot in this store has used."""
        return f"{prefix}-{int(time.time() * 1000)}-{next(self._counter)}"

    def publish(self, name: str, mime_type: str, data_base64: str) -> str:
        shot = Screenshot(name=name, mime_type=mime_type, data_base64=data_base64)
        self._items.pop(name, None)
        self._items[name] = shot
        while len(self._items) > self._max_items:
            self._items.popitem(last=False)
        return shot.uri

    def read(self, name: str) -> Optional[Screenshot]:
        return self._items.get(name)

    def list(self) -> List[Screenshot]:
        return list(self._items.values())

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


__all__ = ["Screenshot", "ScreenshotStore", "SCREENSHOT_SCHEME", "DEFAULT_MAX_SCREENSHOTS"]
