from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class ValidationResult:
    valid_addresses: list[str] = field(default_factory=list)
    invalid_addresses: list[str] = field(default_factory=list)
    cc_addresses: list[str] = field(default_factory=list)
    to_addresses: list[str] = field(default_factory=list)
    total_count: int = 0
    valid_count: int = 0
    invalid_count: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self) -> str:
        """Return the report as indented JSON for dry-run output."""
        return json.dumps(self.to_dict(), indent=2)


@dataclass(frozen=True)
class MailMessage:
    sender: str
    to: list[str]
    cc: list[str] = field(default_factory=list)

    display_name: Optional[str] = None
    subject: str = ""
    body: str = ""
    content_type: str = "text/plain"
    attachments: list[Path] = field(default_factory=list)

    def recipients(self) -> list[str]:
        """Return every envelope recipient, To first."""
        return [*self.to, *self.cc]

    def __str__(self) -> str:
        def fmt(values):
            return ", ".join(str(v) for v in values) or "--"

        return (
            f"MailMessage\n"
            f"{'-' * 60}\n"
            f"From        : {self.display_name or '--'} <{self.sender}>\n"
            f"To          : {fmt(self.to)}\n"
            f"Cc          : {fmt(self.cc)}\n"
            f"Subject     : {self.subject or '--'}\n"
            f"Content-Type: {self.content_type}\n"
            f"Attachments : {fmt(p.name for p in self.attachments)}\n"
        )
