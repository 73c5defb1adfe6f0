from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class AdminState(str, Enum):
    UNREGISTERED = "unregistered"
    PENDING_SETUP = "pending_setup"
    ACTIVE = "active"


class Role(str, Enum):
    STUDENT = "student"
    ADMIN = "admin"


@dataclass
class AdminUser:
    id: str
    phone_number: str
    username: Optional[str] = None
    password_hash: Optional[str] = None
    name: Optional[str] = None
    is_active: bool = True
    is_setup_complete: bool = False

    @property
    def state(self) -> AdminState:
        return AdminState.ACTIVE if self.is_setup_complete else AdminState.PENDING_SETUP

    def profile(self) -> dict:
        """Public view of the account; never includes the password hash."""
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "phone_number": self.phone_number,
        }

    @staticmethod
    def from_dict(data: dict) -> "AdminUser":
        return AdminUser(
            id=data["id"],
            phone_number=data["phone_number"],
            username=data.get("username"),
            password_hash=data.get("password_hash"),
            name=data.get("name"),
            is_active=bool(data.get("is_active", 1)),
            is_setup_complete=bool(data.get("is_setup_complete", 0)),
        )


@dataclass
class AuthState:
    """Session view handed to each request or command."""

    is_authenticated: bool = False
    user: Optional[AdminUser] = None
    role: Role = Role.STUDENT
    token: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.is_authenticated and self.role == Role.ADMIN and self.user is not None

    @classmethod
    def anonymous(cls) -> "AuthState":
        return cls()
