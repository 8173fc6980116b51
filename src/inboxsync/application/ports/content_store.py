from __future__ import annotations
from typing import Protocol

class ContentStore(Protocol):
    def put(self, key: str, data: bytes, content_type: str) -> str: ...
