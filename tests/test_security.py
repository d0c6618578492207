import pytest

from lizardb.config import LOCKOUT_TIME_MS, MAX_LOGIN_ATTEMPTS, SESSION_TIMEOUT_MS
from lizardb.errors import InvalidParameterError, LizardError, NotFoundError
from lizardb.security import SecurityManager, User, UserRole

PASSWORD = "password"
NEW_PASSWORD = "secret"
START = 1_700_000_000


class FakeClock:
    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager(clock):
    return SecurityManager(clock=clock)


def make_user(manager, username="alice", role=UserRole.OPERATOR, **kwargs):
    return manager.create_user(User(username=username, password_hash=PASSWORD, role=role, **kwargs))


def test_create_user_assigns_id_and_timestamps(manager):
    user = make_user(manager)
    assert user.id == 1
    assert user.created_at == START
    assert user.updated_at == START
    assert make_user(manager, "bob").id == 2


def test_create_user_hashes_password(manager):
    user = make_user(manager)
    stored = manager.get_user(user.id)
    assert stored.password_hash != PASSWORD
    assert stored.password_hash.startswith("pbkdf2_sha256$")


def test_duplicate_username_rejected(manager):
    make_user(manager)
    with pytest.raises(InvalidParameterError):
        make_user(manager)


def test_empty_username_rejected(manager):
    with pytest.raises(InvalidParameterError):
        manager.create_user(User(username=""))


def test_authenticate_then_validate(manager, clock):
    user = make_user(manager)
    session_id = manager.authenticate("alice", PASSWORD)
    assert manager.validate_session(session_id) == user.id
    assert manager.get_user(user.id).last_login == clock.now


def test_wrong_password_counts_failures(manager):
    user = make_user(manager)
    with pytest.raises(InvalidParameterError):
        manager.authenticate("alice", NEW_PASSWORD)
    assert manager.get_user(user.id).failed_login_attempts == 1


def test_unknown_user_rejected(manager):
    with pytest.raises(InvalidParameterError):
        manager.authenticate("nobody", PASSWORD)


def test_lockout_after_max_attempts(manager, clock):
    make_user(manager)
    for _ in range(MAX_LOGIN_ATTEMPTS):
        with pytest.raises(InvalidParameterError):
            manager.authenticate("alice", NEW_PASSWORD)
    with pytest.raises(LizardError, match="locked"):
        manager.authenticate("alice", PASSWORD)
    clock.now += LOCKOUT_TIME_MS // 1000
    session_id = manager.authenticate("alice", PASSWORD)
    assert manager.validate_session(session_id) == 1


def test_inactive_user_cannot_log_in(manager):
    make_user(manager, is_active=False)
    with pytest.raises(InvalidParameterError):
        manager.authenticate("alice", PASSWORD)


def test_session_expires(manager, clock):
    make_user(manager)
    session_id = manager.authenticate("alice", PASSWORD)
    clock.now += SESSION_TIMEOUT_MS // 1000
    with pytest.raises(NotFoundError):
        manager.validate_session(session_id)


def test_session_activity_extends_lifetime(manager, clock):
    user = make_user(manager)
    session_id = manager.authenticate("alice", PASSWORD)
    half = SESSION_TIMEOUT_MS // 2000
    clock.now += half
    manager.validate_session(session_id)
    clock.now += half + 1
    assert manager.validate_session(session_id) == user.id


def test_logout_closes_session(manager):
    make_user(manager)
    session_id = manager.authenticate("alice", PASSWORD)
    manager.logout(session_id)
    with pytest.raises(NotFoundError):
        manager.validate_session(session_id)
    with pytest.raises(NotFoundError):
        manager.logout(session_id)


def test_get_user_returns_copy(manager):
    user = make_user(manager)
    copy = manager.get_user(user.id)
    copy.email = "changed@example.com"
    assert manager.get_user(user.id).email == ""


def test_get_unknown_user_raises(manager):
    with pytest.raises(NotFoundError):
        manager.get_user(42)


def test_update_user(manager, clock):
    user = make_user(manager)
    changed = manager.get_user(user.id)
    changed.email = "alice@example.com"
    clock.now += 5
    manager.update_user(changed)
    stored = manager.get_user(user.id)
    assert stored.email == "alice@example.com"
    assert stored.updated_at == clock.now
    assert manager.validate_session(manager.authenticate("alice", PASSWORD)) == user.id


def test_update_unknown_user_raises(manager):
    with pytest.raises(NotFoundError):
        manager.update_user(User(username="ghost", id=9))


def test_delete_user_ends_sessions(manager):
    user = make_user(manager)
    session_id = manager.authenticate("alice", PASSWORD)
    manager.delete_user(user.id)
    with pytest.raises(NotFoundError):
        manager.get_user(user.id)
    with pytest.raises(NotFoundError):
        manager.validate_session(session_id)


@pytest.mark.parametrize(
    "role, resource, action, expected",
    [
        (UserRole.VIEWER, "animals", "read", True),
        (UserRole.VIEWER, "animals", "update", False),
        (UserRole.OPERATOR, "stock", "update", True),
        (UserRole.OPERATOR, "stock", "delete", False),
        (UserRole.ADMIN, "stock", "delete", True),
        (UserRole.OPERATOR, "users", "create", False),
        (UserRole.ADMIN, "users", "create", True),
        (UserRole.ADMIN, "system", "reset", False),
        (UserRole.SUPER_ADMIN, "system", "reset", True),
    ],
)
def test_check_permission(manager, role, resource, action, expected):
    user = make_user(manager, role=role)
    assert manager.check_permission(user.id, resource, action) is expected


def test_inactive_user_has_no_permission(manager):
    user = make_user(manager, role=UserRole.SUPER_ADMIN, is_active=False)
    assert manager.check_permission(user.id, "animals", "read") is False


def test_change_password(manager):
    user = make_user(manager)
    with pytest.raises(InvalidParameterError):
        manager.change_password(user.id, NEW_PASSWORD, NEW_PASSWORD)
    manager.change_password(user.id, PASSWORD, NEW_PASSWORD)
    with pytest.raises(InvalidParameterError):
        manager.authenticate("alice", PASSWORD)
    assert manager.validate_session(manager.authenticate("alice", NEW_PASSWORD)) == user.id


def test_log_audit_records_entry(manager):
    user = make_user(manager)
    entry = manager.log_audit(user.id, "update", "stock", "restock", True, "10.0.0.1")
    logs = manager.audit_logs()
    assert logs == [entry]
    assert entry.username == "alice"
    assert entry.ip_address == "10.0.0.1"
    assert entry.success is True


def test_audit_logs_filters_and_limit(manager, clock):
    first = manager.log_audit(0, "a", "r", None, True, None)
    clock.now += 10
    second = manager.log_audit(0, "b", "r", None, True, None)
    clock.now += 10
    third = manager.log_audit(0, "c", "r", None, False, None)
    assert manager.audit_logs(start_date=START + 5) == [second, third]
    assert manager.audit_logs(end_date=START + 10) == [first, second]
    assert manager.audit_logs(max_count=1) == [first]
    with pytest.raises(InvalidParameterError):
        manager.audit_logs(max_count=-1)


def test_authenticate_is_audited(manager):
    user = make_user(manager)
    manager.authenticate("alice", PASSWORD)
    logs = manager.audit_logs()
    assert [(e.user_id, e.action, e.success) for e in logs] == [(user.id, "login", True)]


def test_encrypt_decrypt_round_trip(manager):
    data = b"terrarium readings"
    encrypted = manager.encrypt(data, "secret")
    assert data not in encrypted
    assert manager.decrypt(encrypted, "secret") == data


def test_encrypt_empty_data_round_trip(manager):
    assert manager.decrypt(manager.encrypt(b"", "secret"), "secret") == b""


def test_decrypt_with_wrong_key_fails(manager):
    encrypted = manager.encrypt(b"data", "secret")
    with pytest.raises(InvalidParameterError):
        manager.decrypt(encrypted, "placeholder")


def test_decrypt_tampered_data_fails(manager):
    encrypted = bytearray(manager.encrypt(b"some data", "secret"))
    encrypted[20] ^= 1
    with pytest.raises(InvalidParameterError):
        manager.decrypt(bytes(encrypted), "secret")


def test_encrypt_requires_key(manager):
    with pytest.raises(InvalidParameterError):
        manager.encrypt(b"data", "")