import logging
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import bcrypt
from jose import JWTError, jwt

from config import settings
from lending.admin import AdminState, AdminUser, AuthState, Role
from lending.database import format_timestamp, get_db_connection, immediate_transaction, utcnow
from lending.errors import ValidationError
from lending.results import FailureCode
from utils.validators import CredentialValidator, TextValidator

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
NOT_AUTHORIZED = "Phone number not authorized for admin access"


@dataclass
class PhoneLookup:
    authorized: bool
    needs_setup: bool = False
    admin_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class AuthResult:
    success: bool
    token: Optional[str] = None
    admin: Optional[AdminUser] = None
    error: Optional[str] = None
    code: Optional[FailureCode] = None

    @classmethod
    def fail(cls, code: FailureCode, error: str) -> "AuthResult":
        return cls(success=False, error=error, code=code)


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


def create_access_token(admin: AdminUser, now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    payload = {
        "admin_id": admin.id,
        "username": admin.username,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=settings.jwt_expiration_minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


class AuthService:
    """Phone-gated admin accounts.

    An administrator starts as a provisioned phone number, completes a
    one-time setup that sets a username and password, and from then on logs
    in with those credentials. Sessions are signed JWTs that the caller
    stores and passes back explicitly to ``load_session``.
    """

    def provision_admin(self, phone_number: str, name: Optional[str] = None) -> AdminUser:
        phone_number = (phone_number or "").strip()
        if not CredentialValidator.is_valid_phone(phone_number):
            raise ValidationError("Please enter a valid phone number")
        stamp = format_timestamp(utcnow())
        admin = AdminUser(id=uuid.uuid4().hex, phone_number=phone_number, name=name)
        conn = get_db_connection()
        try:
            conn.execute(
                "INSERT INTO admins (id, phone_number, name, is_active, is_setup_complete, created_at, updated_at) "
                "VALUES (?, ?, ?, 1, 0, ?, ?)",
                (admin.id, admin.phone_number, admin.name, stamp, stamp),
            )
        except sqlite3.IntegrityError as exc:
            raise ValidationError(f"Phone number {phone_number} is already registered") from exc
        finally:
            conn.close()
        logger.info(f"Admin phone provisioned: id={admin.id}")
        return admin

    def get_admin_by_phone(self, phone_number: str) -> Optional[AdminUser]:
        conn = get_db_connection()
        try:
            row = conn.execute(
                "SELECT * FROM admins WHERE phone_number = ?", ((phone_number or "").strip(),)
            ).fetchone()
            return AdminUser.from_dict(dict(row)) if row else None
        finally:
            conn.close()

    def admin_state(self, phone_number: str) -> AdminState:
        admin = self.get_admin_by_phone(phone_number)
        if admin is None or not admin.is_active:
            return AdminState.UNREGISTERED
        return admin.state

    def phone_login(self, phone_number: str) -> PhoneLookup:
        """First step of the admin flow: is this phone allowed, and is setup still pending?"""
        if not CredentialValidator.is_valid_phone(phone_number):
            raise ValidationError("Please enter a valid phone number")
        admin = self.get_admin_by_phone(phone_number)
        if admin is None or not admin.is_active:
            logger.warning("Phone login rejected for unregistered number")
            return PhoneLookup(authorized=False, error=NOT_AUTHORIZED)
        return PhoneLookup(authorized=True, needs_setup=not admin.is_setup_complete, admin_id=admin.id)

    def setup_account(self, phone_number: str, username: str, password: str, name: str) -> AuthResult:
        """Complete the one-time setup for a provisioned phone and open a session."""
        phone_number = (phone_number or "").strip()
        username = (username or "").strip()
        if not CredentialValidator.is_valid_phone(phone_number):
            raise ValidationError("Please enter a valid phone number")
        if not CredentialValidator.is_valid_username(username):
            raise ValidationError(
                "Username must be at least 3 characters and contain only letters, numbers, and underscores"
            )
        problem = CredentialValidator.password_problem(password)
        if problem:
            raise ValidationError(problem)
        if not TextValidator.has_min_length(name, 2):
            raise ValidationError("Name must be at least 2 characters")

        # Hash before taking the write lock.
        password_hash = hash_password(password)
        with immediate_transaction() as conn:
            row = conn.execute("SELECT * FROM admins WHERE phone_number = ?", (phone_number,)).fetchone()
            if row is None or not row["is_active"]:
                logger.warning("Setup rejected for unregistered number")
                return AuthResult.fail(FailureCode.NOT_AUTHORIZED, NOT_AUTHORIZED)
            admin = AdminUser.from_dict(dict(row))
            if admin.is_setup_complete:
                logger.warning(f"Setup rejected: admin {admin.id} is already set up")
                return AuthResult.fail(FailureCode.ALREADY_SETUP, "Account setup has already been completed")
            taken = conn.execute(
                "SELECT 1 FROM admins WHERE username = ? AND id != ?", (username, admin.id)
            ).fetchone()
            if taken:
                return AuthResult.fail(FailureCode.USERNAME_TAKEN, "Username already taken")
            conn.execute(
                "UPDATE admins SET username = ?, password_hash = ?, name = ?, is_setup_complete = 1, "
                "updated_at = ? WHERE id = ?",
                (username, password_hash, name.strip(), format_timestamp(utcnow()), admin.id),
            )

        admin.username, admin.password_hash, admin.name = username, password_hash, name.strip()
        admin.is_setup_complete = True
        logger.info(f"Admin setup completed: id={admin.id}, username={username}")
        return AuthResult(success=True, token=create_access_token(admin), admin=admin)

    def login(self, username: str, password: str) -> AuthResult:
        if not username or not password:
            raise ValidationError("Username and password are required")
        conn = get_db_connection()
        try:
            row = conn.execute(
                "SELECT * FROM admins WHERE username = ? AND is_active = 1 AND is_setup_complete = 1",
                (username.strip(),),
            ).fetchone()
        finally:
            conn.close()
        admin = AdminUser.from_dict(dict(row)) if row else None
        # Unknown user and wrong password are indistinguishable to the caller.
        if admin is None or not verify_password(password, admin.password_hash):
            logger.warning("Admin login failed")
            return AuthResult.fail(FailureCode.INVALID_CREDENTIALS, INVALID_CREDENTIALS)
        logger.info(f"Admin logged in: id={admin.id}")
        return AuthResult(success=True, token=create_access_token(admin), admin=admin)

    def load_session(self, token: Optional[str]) -> AuthState:
        """Restore the auth state carried by a token; anything invalid is anonymous."""
        if not token:
            return AuthState.anonymous()
        try:
            payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        except JWTError as exc:
            logger.debug(f"Rejected session token: {exc}")
            return AuthState.anonymous()
        admin_id = payload.get("admin_id")
        if not admin_id:
            return AuthState.anonymous()

        conn = get_db_connection()
        try:
            row = conn.execute("SELECT * FROM admins WHERE id = ?", (admin_id,)).fetchone()
        finally:
            conn.close()
        if row is None:
            return AuthState.anonymous()
        admin = AdminUser.from_dict(dict(row))
        if not admin.is_active or not admin.is_setup_complete:
            return AuthState.anonymous()
        return AuthState(is_authenticated=True, user=admin, role=Role.ADMIN, token=token)

    def deactivate_admin(self, phone_number: str) -> bool:
        conn = get_db_connection()
        try:
            cursor = conn.execute(
                "UPDATE admins SET is_active = 0, updated_at = ? WHERE phone_number = ?",
                (format_timestamp(utcnow()), (phone_number or "").strip()),
            )
        finally:
            conn.close()
        if cursor.rowcount:
            logger.info("Admin deactivated")
        return cursor.rowcount > 0
