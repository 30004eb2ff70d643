"""
auth.py
Staff authentication (bcrypt hashing, login, registration, password change) and roles.

bcrypt is used directly to avoid passlib's backend auto-detection issues on some setups.
"""

from __future__ import annotations

import logging
from enum import Enum

import bcrypt

import db
from models import StaffUser

logger = logging.getLogger(__name__)


class Role(str, Enum):
    CASHIER = "cashier"
    MANAGER = "manager"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    @classmethod
    def parse(cls, value) -> "Role":
        if isinstance(value, Role):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown role: {value!r}") from None


_ROLE_RANK = {Role.CASHIER: 1, Role.MANAGER: 2, Role.ADMIN: 3}


def can_access(role, required: Role) -> bool:
    """True when `role` is at or above `required` in cashier < manager < admin."""
    return Role.parse(role).rank >= Role.parse(required).rank


def _to_bcrypt_secret(password: str) -> bytes:
    """
    bcrypt only uses the first 72 BYTES of the password.
    We truncate to 72 bytes to avoid ValueError and to make behavior explicit.
    """
    pw = password.encode("utf-8")
    if len(pw) > 72:
        pw = pw[:72]
    return pw


def hash_password(password: str) -> str:
    secret = _to_bcrypt_secret(password)
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(secret, salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(_to_bcrypt_secret(password), password_hash.encode("utf-8"))


def get_staff_by_username(username: str):
    return db.fetch_one("SELECT * FROM staff_users WHERE username = ?", (username,))


def login(username: str, password: str) -> StaffUser | None:
    row = get_staff_by_username(username)
    if not row or not verify_password(password, row["password_hash"]):
        logger.info("Failed login for %r", username)
        return None
    return StaffUser(id=row["id"], username=row["username"], name=row["name"], role=row["role"])


def register_staff(username: str, name: str, password: str, role=Role.CASHIER) -> int:
    role = Role.parse(role)
    if get_staff_by_username(username):
        raise ValueError(f"Username {username!r} is already taken.")
    staff_id = db.insert_staff(username, name, hash_password(password), role.value)
    logger.info("Registered staff %r as %s", username, role.value)
    return staff_id


def set_role(username: str, role) -> None:
    db.execute("UPDATE staff_users SET role = ? WHERE username = ?", (Role.parse(role).value, username))


def change_password(username: str, new_password: str) -> None:
    db.execute(
        "UPDATE staff_users SET password_hash = ? WHERE username = ?",
        (hash_password(new_password), username),
    )
    db.clear_force_password_change()
