from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

@dataclass(frozen=True)
class AttachmentRef:
    id: str
    filename: str
    content_type: str
    size: int
    content_id: Optional[str] = None

    # Where the bytes live; None when the payload was not stored
    content_key: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "filename": self.filename,
            "contentType": self.content_type,
            "size": self.size,
            "contentId": self.content_id,
            "contentKey": self.content_key,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AttachmentRef":
        return cls(
            id=data["id"],
            filename=data["filename"],
            content_type=data["contentType"],
            size=data.get("size", 0),
            content_id=data.get("contentId"),
            content_key=data.get("contentKey"),
        )
