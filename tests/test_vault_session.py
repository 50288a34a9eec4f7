import pytest

from codeflow import config
from codeflow.errors import (
    AuthenticationFailed,
    InvalidIdentifier,
    InvalidSecret,
    ReservedIdentifier,
    UserExists,
    UserNotFound,
    VerificationFailed,
    WeakPassword,
)
from codeflow.security.account_store import accounts_key, user_key
from codeflow.security.vault_session import (
    AdminConsole,
    VaultSession,
    normalize_account_fields,
    reset_user,
)
from codeflow.totp import otp

from conftest import PASSWORD, RFC_SECRET

EMAIL = "alice@example.com"
ADMIN_PASSWORD = "administrator"


@pytest.fixture
def session(store, clock):
    return VaultSession(store, clock=clock)


@pytest.fixture
def registered(session):
    session.register(EMAIL, PASSWORD)
    return session


@pytest.fixture
def admin(store):
    console = AdminConsole(store)
    console.ensure_admin(ADMIN_PASSWORD)
    console.login(config.ADMIN_EMAIL, ADMIN_PASSWORD)
    return console


def github_fields():
    return normalize_account_fields("alice", "JBSW Y3DP EHPK 3PXP", "GitHub")


def test_register_creates_record_and_empty_vault(registered, kv):
    assert registered.is_logged_in
    assert registered.current_user == EMAIL
    assert registered.accounts == []
    assert kv.get(user_key(EMAIL)) is not None
    assert kv.get(accounts_key(EMAIL)) is not None


@pytest.mark.parametrize("email,error", [
    ("not-an-email", InvalidIdentifier),
    ("", InvalidIdentifier),
    (config.ADMIN_EMAIL, ReservedIdentifier),
    (config.ADMIN_EMAIL.upper(), ReservedIdentifier),
])
def test_register_rejects_identifiers(session, email, error):
    with pytest.raises(error):
        session.register(email, PASSWORD)


def test_register_rejects_duplicates_and_weak_passwords(registered, store, clock):
    with pytest.raises(UserExists):
        VaultSession(store, clock=clock).register(EMAIL, PASSWORD)
    with pytest.raises(WeakPassword):
        VaultSession(store, clock=clock).register("bob@example.com", "short")


def test_login_round_trip(registered, store, clock):
    registered.add_account(github_fields())
    registered.logout()
    assert not registered.is_logged_in
    assert registered.accounts == []

    other = VaultSession(store, clock=clock)
    other.login(EMAIL, PASSWORD)
    assert [account.issuer for account in other.accounts] == ["GitHub"]


def test_login_failures(registered, store, kv):
    session = VaultSession(store)
    with pytest.raises(UserNotFound):
        session.login("nobody@example.com", PASSWORD)
    with pytest.raises(AuthenticationFailed):
        session.login(EMAIL, "wrong password")

    kv.set(accounts_key(EMAIL), "garbage")
    with pytest.raises(AuthenticationFailed) as excinfo:
        session.login(EMAIL, PASSWORD)
    assert str(excinfo.value) == "Incorrect password or corrupted data"
    assert not session.is_logged_in


def test_change_password_keeps_salt_and_accounts(registered, store, kv, clock):
    registered.add_account(github_fields())
    salt_before = store.load_user(EMAIL).salt

    registered.change_password(PASSWORD, "a brand new password")

    assert store.load_user(EMAIL).salt == salt_before
    session = VaultSession(store, clock=clock)
    with pytest.raises(AuthenticationFailed):
        session.login(EMAIL, PASSWORD)
    session.login(EMAIL, "a brand new password")
    assert len(session.accounts) == 1


def test_change_password_rules(registered):
    with pytest.raises(AuthenticationFailed):
        registered.change_password("wrong password", "a brand new password")
    with pytest.raises(WeakPassword):
        registered.change_password(PASSWORD, "short")
    with pytest.raises(WeakPassword):
        registered.change_password(PASSWORD, PASSWORD)


def test_operations_require_login(session):
    with pytest.raises(AuthenticationFailed):
        session.add_account(github_fields())
    with pytest.raises(AuthenticationFailed):
        session.change_password(PASSWORD, "another password")


def test_normalize_account_fields():
    assert github_fields() == {"issuer": "GitHub", "name": "alice", "secret": "JBSWY3DPEHPK3PXP"}
    fields = normalize_account_fields(" bank ", "abc", username="me", password="pw")
    assert fields == {"issuer": "bank", "name": "bank", "secret": "abc",
                      "username": "me", "password": "pw"}
    with pytest.raises(ValueError):
        normalize_account_fields("", "ABC")
    with pytest.raises(ValueError):
        normalize_account_fields("name", "   ")


def test_add_account_ids_are_unique(registered, clock):
    first = registered.add_account(github_fields())
    second = registered.add_account(github_fields())
    assert first.id == str(int(clock.now * 1000))
    assert second.id != first.id
    assert len(registered.accounts) == 2


def test_verify_and_add_accepts_adjacent_steps(registered, clock):
    counter = otp.counter_at(clock.now)
    fields = normalize_account_fields("rfc", RFC_SECRET, "Example")
    for delta in (-1, 0, 1):
        registered.verify_and_add(fields, otp.hotp(RFC_SECRET, counter + delta))
    assert len(registered.accounts) == 3


def test_verify_and_add_rejects_wrong_code(registered, clock):
    fields = normalize_account_fields("rfc", RFC_SECRET, "Example")
    valid = {otp.hotp(RFC_SECRET, otp.counter_at(clock.now) + d) for d in (-1, 0, 1)}
    wrong = next(code for code in ("000000", "111111", "222222") if code not in valid)
    with pytest.raises(VerificationFailed):
        registered.verify_and_add(fields, wrong)
    assert registered.accounts == []

    with pytest.raises(InvalidSecret):
        registered.verify_and_add(normalize_account_fields("x", "!!!"), "123456")


def test_bulk_add_assigns_indexed_ids(registered, store, clock):
    fields = [normalize_account_fields(f"user{i}", RFC_SECRET, "Example") for i in range(3)]
    added = registered.add_accounts(fields)
    stamp = str(int(clock.now * 1000))
    assert [account.id for account in added] == [f"{stamp}-0", f"{stamp}-1", f"{stamp}-2"]

    session = VaultSession(store)
    session.login(EMAIL, PASSWORD)
    assert [account.name for account in session.accounts] == ["user0", "user1", "user2"]


def test_delete_account(registered):
    account = registered.add_account(github_fields())
    assert registered.delete_account("missing") is False
    assert registered.delete_account(account.id) is True
    assert registered.accounts == []


def test_search_matches_issuer_or_name(registered):
    registered.add_accounts([
        normalize_account_fields("alice", RFC_SECRET, "GitHub"),
        normalize_account_fields("ops@corp.example", RFC_SECRET, "AWS"),
    ])
    assert [a.issuer for a in registered.search("git")] == ["GitHub"]
    assert [a.issuer for a in registered.search("CORP")] == ["AWS"]
    assert len(registered.search("")) == 2
    assert registered.search("nothing") == []


def test_current_codes(registered):
    registered.add_accounts([
        normalize_account_fields("rfc", RFC_SECRET, "Example"),
        normalize_account_fields("broken", "!!!", "Bad"),
    ])
    results = registered.current_codes(now=59)
    assert [(code, remaining) for _, code, remaining in results] == [("287082", 1), ("Error", 1)]


def test_admin_login_requires_reserved_identifier(store):
    console = AdminConsole(store)
    assert console.ensure_admin(ADMIN_PASSWORD) is True
    assert console.ensure_admin(ADMIN_PASSWORD) is False
    with pytest.raises(ReservedIdentifier):
        console.login(EMAIL, ADMIN_PASSWORD)
    with pytest.raises(AuthenticationFailed):
        console.login(config.ADMIN_EMAIL, "wrong password")
    with pytest.raises(AuthenticationFailed):
        console.list_users()


def test_admin_reset_password_wipes_vault(registered, admin, store, clock):
    registered.add_account(github_fields())
    salt_before = store.load_user(EMAIL).salt

    admin.reset_password(EMAIL, "reset password")

    assert store.load_user(EMAIL).salt == salt_before
    session = VaultSession(store, clock=clock)
    session.login(EMAIL, "reset password")
    assert session.accounts == []


def test_admin_rename_and_delete(registered, admin, store):
    registered.add_account(github_fields())
    assert [user.email for user in admin.list_users()] == [EMAIL]

    admin.rename_user(EMAIL, "alice@new.example")
    session = VaultSession(store)
    session.login("alice@new.example", PASSWORD)
    assert len(session.accounts) == 1

    with pytest.raises(ReservedIdentifier):
        admin.rename_user("alice@new.example", config.ADMIN_EMAIL)
    with pytest.raises(ReservedIdentifier):
        admin.delete_user(config.ADMIN_EMAIL)

    admin.delete_user("alice@new.example")
    assert not store.user_exists("alice@new.example")
    with pytest.raises(UserNotFound):
        admin.delete_user("alice@new.example")


def test_reset_user_deletes_everything(registered, store, kv):
    reset_user(store, EMAIL)
    assert kv.keys() == []
    with pytest.raises(UserNotFound):
        reset_user(store, EMAIL)
    with pytest.raises(ReservedIdentifier):
        reset_user(store, config.ADMIN_EMAIL)


def test_admin_cannot_rename_or_reset_itself(registered, admin, store):
    with pytest.raises(ReservedIdentifier):
        admin.rename_user(config.ADMIN_EMAIL, "someone@example.com")
    with pytest.raises(ReservedIdentifier):
        admin.reset_password(config.ADMIN_EMAIL, "another admin password")

    assert store.user_exists(config.ADMIN_EMAIL)
    assert not store.user_exists("someone@example.com")
    AdminConsole(store).login(config.ADMIN_EMAIL, ADMIN_PASSWORD)


def test_single_and_bulk_ids_never_collide(registered, store):
    fields = normalize_account_fields("rfc", RFC_SECRET, "Example")
    registered.add_account(fields)
    registered.add_account(fields)
    registered.add_accounts([fields, fields])
    registered.add_accounts([fields, fields])

    ids = [account.id for account in registered.accounts]
    assert len(set(ids)) == len(ids) == 6

    assert registered.delete_account(ids[1]) is True
    assert len(registered.accounts) == 5

    session = VaultSession(store)
    session.login(EMAIL, PASSWORD)
    assert [account.id for account in session.accounts] == ids[:1] + ids[2:]
