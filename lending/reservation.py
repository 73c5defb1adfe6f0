from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

from lending.database import parse_timestamp


@dataclass
class Reservation:
    """An advisory hold on a title. Never changes copy counters."""

    id: str
    book_id: str
    reserver_name: str
    reserved_at: str
    expires_at: str
    reserver_email: Optional[str] = None
    reserver_phone: Optional[str] = None
    is_fulfilled: bool = False
    is_cancelled: bool = False

    def is_active(self, now: datetime) -> bool:
        return not self.is_fulfilled and not self.is_cancelled and parse_timestamp(self.expires_at) > now

    def to_dict(self) -> dict:
        return asdict(self)

    @staticmethod
    def from_dict(data: dict) -> "Reservation":
        return Reservation(
            id=data["id"],
            book_id=data["book_id"],
            reserver_name=data["reserver_name"],
            reserved_at=data["reserved_at"],
            expires_at=data["expires_at"],
            reserver_email=data.get("reserver_email"),
            reserver_phone=data.get("reserver_phone"),
            is_fulfilled=bool(data.get("is_fulfilled")),
            is_cancelled=bool(data.get("is_cancelled")),
        )
