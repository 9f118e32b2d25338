from __future__ import annotations
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class MailboxInfo:
    name: str
    delimiter: Optional[str]
    children: int = 0

    def to_dict(self) -> dict:
        return {"name": self.name, "delimiter": self.delimiter, "children": self.children}


@dataclass(frozen=True)
class SendResult:
    message_id: Optional[str]
    response: str
    accepted: tuple = ()
    rejected: tuple = ()

    def to_dict(self) -> dict:
        return {"messageId": self.message_id, "response": self.response}
