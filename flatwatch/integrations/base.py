from __future__ import annotations
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class EmailMessageSpec:
    to: str
    subject: str
    html: str
    text: str


@dataclass(frozen=True)
class DeliveryResult:
    ok: bool
    error: str | None = None


class Mailer(Protocol):
    async def send(self, message: EmailMessageSpec) -> DeliveryResult:
        ...
