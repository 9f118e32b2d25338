from __future__ import annotations
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AttachmentSummary:
    filename: Optional[str]
    content_type: str
    size: int

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "contentType": self.content_type,
            "size": self.size,
        }


@dataclass(frozen=True)
class AttachmentPayload:
    filename: Optional[str]
    content_type: str
    size: int
    content_base64: str

    def __repr__(self) -> str:
        return (
            f"AttachmentPayload("
            f"filename={self.filename!r}, "
            f"content_type={self.content_type!r}, "
            f"size={self.size} bytes)"
        )

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "contentType": self.content_type,
            "size": self.size,
            "content": self.content_base64,
            "encoding": "base64",
        }
