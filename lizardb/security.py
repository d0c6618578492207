"""User accounts, sessions, permissions, audit trail and data encryption."""

from __future__ import annotations

import hashlib
import hmac
import logging
import os
import secrets
import time
from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Callable

from .config import LOCKOUT_TIME_MS, MAX_LOGIN_ATTEMPTS, SESSION_TIMEOUT_MS
from .errors import InvalidParameterError, LizardError, NotFoundError

_log = logging.getLogger(__name__)

USERNAME_SIZE = 32
ACTION_SIZE = 64
RESOURCE_SIZE = 64
DETAILS_SIZE = 256
IP_ADDRESS_SIZE = 16

_HASH_SCHEME = "pbkdf2_sha256"
_HASH_ITERATIONS = 60_000
_SALT_SIZE = 16
_TAG_SIZE = 32
_BLOCK_SIZE = 32


class UserRole(IntEnum):
    """Access level; a higher value grants everything a lower one does."""

    VIEWER = 0
    OPERATOR = 1
    ADMIN = 2
    SUPER_ADMIN = 3


@dataclass
class User:
    """An account.

    ``password_hash`` holds the stored hash; a value given in plain form is
    hashed when the user is created or updated.
    """

    username: str = ""
    password_hash: str = ""
    email: str = ""
    role: UserRole = UserRole.VIEWER
    is_active: bool = True
    last_login: int = 0
    failed_login_attempts: int = 0
    lockout_until: int = 0
    id: int = 0
    created_at: int = 0
    updated_at: int = 0

    def __post_init__(self) -> None:
        try:
            self.role = UserRole(self.role)
        except ValueError as exc:
            raise InvalidParameterError(str(exc)) from None


@dataclass
class Session:
    """A logged-in session."""

    session_id: str
    user_id: int
    created_at: int
    last_activity: int
    expires_at: int
    ip_address: str = ""
    is_active: bool = True


@dataclass
class AuditLogEntry:
    """One recorded action."""

    id: int
    user_id: int
    username: str
    action: str
    resource: str
    details: str
    timestamp: int
    ip_address: str
    success: bool


def _hash_password(password: str, salt: bytes | None = None,
                   iterations: int = _HASH_ITERATIONS) -> str:
    salt = salt if salt is not None else os.urandom(_SALT_SIZE)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return f"{_HASH_SCHEME}${iterations}${salt.hex()}${digest.hex()}"


def _parse_hash(stored: str) -> tuple[int, bytes, bytes] | None:
    parts = stored.split("$")
    if len(parts) != 4 or parts[0] != _HASH_SCHEME:
        return None
    try:
        return int(parts[1]), bytes.fromhex(parts[2]), bytes.fromhex(parts[3])
    except ValueError:
        return None


def _verify_password(password: str, stored: str) -> bool:
    parsed = _parse_hash(stored)
    if parsed is None:
        return False
    iterations, salt, expected = parsed
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return hmac.compare_digest(digest, expected)


_READ_ACTIONS = frozenset({"read", "view", "list", "export"})
_WRITE_ACTIONS = frozenset({"create", "update", "write", "control", "acknowledge"})
_DELETE_ACTIONS = frozenset({"delete"})
_ADMIN_RESOURCES = frozenset({"users", "security", "config", "audit"})


def _required_role(resource: str, action: str) -> UserRole:
    action = action.lower()
    if action in _READ_ACTIONS:
        role = UserRole.VIEWER
    elif action in _WRITE_ACTIONS:
        role = UserRole.OPERATOR
    elif action in _DELETE_ACTIONS:
        role = UserRole.ADMIN
    else:
        role = UserRole.SUPER_ADMIN
    if resource.lower() in _ADMIN_RESOURCES:
        role = max(role, UserRole.ADMIN)
    return role


def _derive_keys(key: str, salt: bytes) -> tuple[bytes, bytes]:
    material = hashlib.pbkdf2_hmac("sha256", key.encode("utf-8"), salt,
                                   _HASH_ITERATIONS, dklen=64)
    return material[:32], material[32:]


def _keystream_xor(enc_key: bytes, data: bytes) -> bytes:
    out = bytearray()
    for offset in range(0, len(data), _BLOCK_SIZE):
        counter = (offset // _BLOCK_SIZE).to_bytes(8, "big")
        block = hashlib.sha256(enc_key + counter).digest()
        chunk = data[offset:offset + _BLOCK_SIZE]
        out.extend(a ^ b for a, b in zip(chunk, block))
    return bytes(out)


class SecurityManager:
    """In-memory accounts, sessions and audit log."""

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        session_timeout: float = SESSION_TIMEOUT_MS / 1000,
        max_login_attempts: int = MAX_LOGIN_ATTEMPTS,
        lockout_time: float = LOCKOUT_TIME_MS / 1000,
    ) -> None:
        if session_timeout <= 0 or lockout_time < 0 or max_login_attempts < 1:
            raise InvalidParameterError("invalid security settings")
        self._clock = clock
        self._session_timeout = int(session_timeout)
        self._max_attempts = max_login_attempts
        self._lockout_time = int(lockout_time)
        self._users: list[User] = []
        self._sessions: dict[str, Session] = {}
        self._audit: list[AuditLogEntry] = []
        self._next_user_id = 1
        self._next_audit_id = 1

    def _now(self) -> int:
        return int(self._clock())

    def _find(self, user_id: int) -> User:
        for user in self._users:
            if user.id == user_id:
                return user
        raise NotFoundError(f"no user with id {user_id}")

    def _find_by_name(self, username: str) -> User | None:
        return next((u for u in self._users if u.username == username), None)

    @staticmethod
    def _check_username(username: str) -> None:
        if not isinstance(username, str) or not username:
            raise InvalidParameterError("username is required")
        if len(username) >= USERNAME_SIZE:
            raise InvalidParameterError(
                f"username must be shorter than {USERNAME_SIZE} characters"
            )

    @staticmethod
    def _stored_hash(value: str) -> str:
        if not value or _parse_hash(value) is not None:
            return value
        return _hash_password(value)

    # --- sessions -------------------------------------------------------

    def authenticate(self, username: str, password: str) -> str:
        """Check credentials and open a session; return its id."""
        if username is None or password is None:
            raise InvalidParameterError("username and password are required")
        now = self._now()
        user = self._find_by_name(username)
        if user is None or not user.is_active:
            self.log_audit(0, "login", "session", f"rejected login for {username}", False, None)
            raise InvalidParameterError("invalid username or password")
        if user.lockout_until > now:
            self.log_audit(user.id, "login", "session", "account locked", False, None)
            raise LizardError(f"account {username} is locked")
        if not _verify_password(password, user.password_hash):
            user.failed_login_attempts += 1
            if user.failed_login_attempts >= self._max_attempts:
                user.lockout_until = now + self._lockout_time
                user.failed_login_attempts = 0
            self.log_audit(user.id, "login", "session", "wrong password", False, None)
            raise InvalidParameterError("invalid username or password")
        user.failed_login_attempts = 0
        user.lockout_until = 0
        user.last_login = now
        session_id = secrets.token_hex(16)
        self._sessions[session_id] = Session(
            session_id=session_id,
            user_id=user.id,
            created_at=now,
            last_activity=now,
            expires_at=now + self._session_timeout,
        )
        self.log_audit(user.id, "login", "session", "", True, None)
        _log.info("user authenticated: %s", username)
        return session_id

    def validate_session(self, session_id: str) -> int:
        """Return the user id of a live session and extend its lifetime."""
        if session_id is None:
            raise InvalidParameterError("session_id is required")
        session = self._sessions.get(session_id)
        if session is None or not session.is_active:
            raise NotFoundError("unknown session")
        now = self._now()
        if now >= session.expires_at:
            session.is_active = False
            del self._sessions[session_id]
            raise NotFoundError("session expired")
        try:
            user = self._find(session.user_id)
        except NotFoundError:
            del self._sessions[session_id]
            raise
        if not user.is_active:
            del self._sessions[session_id]
            raise NotFoundError("user is no longer active")
        session.last_activity = now
        session.expires_at = now + self._session_timeout
        return session.user_id

    def logout(self, session_id: str) -> None:
        """Close a session."""
        if session_id is None:
            raise InvalidParameterError("session_id is required")
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise NotFoundError("unknown session")
        session.is_active = False
        self.log_audit(session.user_id, "logout", "session", "", True, session.ip_address)

    # --- users ----------------------------------------------------------

    def create_user(self, user: User) -> User:
        """Store ``user`` with a fresh id and timestamps, and return it."""
        if user is None:
            raise InvalidParameterError("user is required")
        self._check_username(user.username)
        if self._find_by_name(user.username) is not None:
            raise InvalidParameterError(f"username {user.username!r} is taken")
        user.password_hash = self._stored_hash(user.password_hash)
        user.id = self._next_user_id
        self._next_user_id += 1
        user.created_at = self._now()
        user.updated_at = user.created_at
        self._users.append(replace(user))
        _log.info("user created: %s", user.username)
        return user

    def update_user(self, user: User) -> None:
        """Replace the stored user that has ``user.id``."""
        if user is None:
            raise InvalidParameterError("user is required")
        self._check_username(user.username)
        for index, stored in enumerate(self._users):
            if stored.id == user.id:
                other = self._find_by_name(user.username)
                if other is not None and other.id != user.id:
                    raise InvalidParameterError(f"username {user.username!r} is taken")
                updated = replace(user, password_hash=self._stored_hash(user.password_hash))
                updated.updated_at = self._now()
                self._users[index] = updated
                return
        raise NotFoundError(f"no user with id {user.id}")

    def delete_user(self, user_id: int) -> None:
        """Remove a user and close their sessions."""
        self._users.remove(self._find(user_id))
        for session_id in [s.session_id for s in self._sessions.values() if s.user_id == user_id]:
            del self._sessions[session_id]

    def get_user(self, user_id: int) -> User:
        """Return a copy of the user with ``user_id``."""
        return replace(self._find(user_id))

    def check_permission(self, user_id: int, resource: str, action: str) -> bool:
        """Tell whether the user's role allows ``action`` on ``resource``."""
        if resource is None or action is None:
            raise InvalidParameterError("resource and action are required")
        user = self._find(user_id)
        if not user.is_active:
            return False
        return user.role >= _required_role(resource, action)

    def change_password(self, user_id: int, old_password: str, new_password: str) -> None:
        """Replace a password after checking the current one."""
        if old_password is None or new_password is None:
            raise InvalidParameterError("passwords are required")
        if not new_password:
            raise InvalidParameterError("new password must not be empty")
        user = self._find(user_id)
        if not _verify_password(old_password, user.password_hash):
            self.log_audit(user_id, "change_password", "users", "wrong password", False, None)
            raise InvalidParameterError("current password is wrong")
        user.password_hash = _hash_password(new_password)
        user.updated_at = self._now()
        self.log_audit(user_id, "change_password", "users", "", True, None)

    # --- audit ----------------------------------------------------------

    def log_audit(self, user_id: int, action: str, resource: str, details: str | None,
                  success: bool, ip_address: str | None) -> AuditLogEntry:
        """Record an action in the audit log and return the entry."""
        if action is None or resource is None:
            raise InvalidParameterError("action and resource are required")
        user = next((u for u in self._users if u.id == user_id), None)
        entry = AuditLogEntry(
            id=self._next_audit_id,
            user_id=user_id,
            username=user.username if user else "",
            action=action[: ACTION_SIZE - 1],
            resource=resource[: RESOURCE_SIZE - 1],
            details=(details or "")[: DETAILS_SIZE - 1],
            timestamp=self._now(),
            ip_address=(ip_address or "")[: IP_ADDRESS_SIZE - 1],
            success=bool(success),
        )
        self._next_audit_id += 1
        self._audit.append(entry)
        _log.info("audit: user=%d action=%s resource=%s success=%s",
                  user_id, action, resource, success)
        return replace(entry)

    def audit_logs(self, max_count: int | None = None, start_date: int = 0,
                   end_date: int = 0) -> list[AuditLogEntry]:
        """Return entries oldest first; a date of 0 leaves that bound open."""
        if max_count is not None and max_count < 0:
            raise InvalidParameterError("max_count must not be negative")
        found = [
            replace(e) for e in self._audit
            if (not start_date or e.timestamp >= start_date)
            and (not end_date or e.timestamp <= end_date)
        ]
        return found[:max_count]

    # --- encryption -----------------------------------------------------

    def encrypt(self, data: bytes, key: str) -> bytes:
        """Encrypt and authenticate ``data`` with a key derived from ``key``."""
        if data is None or not key:
            raise InvalidParameterError("data and key are required")
        salt = os.urandom(_SALT_SIZE)
        enc_key, mac_key = _derive_keys(key, salt)
        body = _keystream_xor(enc_key, bytes(data))
        tag = hmac.new(mac_key, salt + body, hashlib.sha256).digest()
        return salt + body + tag

    def decrypt(self, data: bytes, key: str) -> bytes:
        """Check and decrypt what :meth:`encrypt` produced."""
        if data is None or not key:
            raise InvalidParameterError("data and key are required")
        data = bytes(data)
        if len(data) < _SALT_SIZE + _TAG_SIZE:
            raise InvalidParameterError("encrypted data is too short")
        salt, body, tag = data[:_SALT_SIZE], data[_SALT_SIZE:-_TAG_SIZE], data[-_TAG_SIZE:]
        enc_key, mac_key = _derive_keys(key, salt)
        expected = hmac.new(mac_key, salt + body, hashlib.sha256).digest()
        if not hmac.compare_digest(tag, expected):
            raise InvalidParameterError("wrong key or corrupted data")
        return _keystream_xor(enc_key, body)