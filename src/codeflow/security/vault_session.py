"""
Vault Session Module

Application-level operations on top of the encrypted account store:

- VaultSession: register, login and logout a user; change the password;
  add (with enrollment verification), bulk add, delete and search accounts;
  compute the current codes
- AdminConsole: the reserved administrator's view: list, rename, reset and
  delete users

Login failures caused by a wrong password, a malformed blob or corrupted
data are reported identically, so the caller cannot tell which occurred.
"""

import re
import time
import logging

from .. import config
from ..errors import (
    AuthenticationFailed,
    CorruptData,
    InvalidIdentifier,
    InvalidSecret,
    MalformedEnvelope,
    ReservedIdentifier,
    UserExists,
    UserNotFound,
    VerificationFailed,
    WeakPassword,
)
from ..models import Account
from ..totp import otp
from ..totp.ticker import ERROR_CODE
from . import vault_crypto

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
LOGIN_FAILED_MESSAGE = "Incorrect password or corrupted data"


def validate_email(email):
    """
    Normalise and validate a user identifier.

    Raises:
        InvalidIdentifier: If the identifier is not an email address
    """
    email = (email or "").strip()
    if not EMAIL_PATTERN.match(email):
        raise InvalidIdentifier("Please enter a valid email address")
    return email


def validate_password(password):
    """
    Raises:
        WeakPassword: If the password is shorter than the configured minimum
    """
    if not password or len(password) < config.MIN_PASSWORD_LENGTH:
        raise WeakPassword(f"Password must be at least {config.MIN_PASSWORD_LENGTH} characters")


def is_admin(email, admin_email=None):
    admin_email = admin_email or config.ADMIN_EMAIL
    return (email or "").strip().lower() == admin_email.lower()


def normalize_account_fields(name, secret, issuer="", username=None, password=None):
    """
    Clean up manually entered account fields.

    The name and secret are required; whitespace is removed from the secret
    and the issuer defaults to the name.

    Returns:
        dict: Fields for a new Account (without id)

    Raises:
        ValueError: If name or secret is empty
    """
    name = (name or "").strip()
    secret = "".join((secret or "").split())
    if not name or not secret:
        raise ValueError("Account name and secret are required")
    fields = {
        "issuer": (issuer or "").strip() or name,
        "name": name,
        "secret": secret,
    }
    if username:
        fields["username"] = username.strip()
    if password:
        fields["password"] = password
    return fields


def _unlock(store, email, password):
    """Derive the key from the stored salt and decrypt the vault."""
    record = store.load_user(email)
    if record is None:
        raise UserNotFound(f"User not found: {email}")
    key = vault_crypto.derive_key(password, record.salt_bytes)
    try:
        accounts = store.load(key, email)
    except (AuthenticationFailed, MalformedEnvelope, CorruptData) as e:
        logger.warning(f"Failed to unlock vault for {email} ({type(e).__name__})")
        raise AuthenticationFailed(LOGIN_FAILED_MESSAGE) from e
    return key, accounts


class VaultSession:
    """
    A single user's session.

    Holds the derived key and the decrypted account list in memory while
    logged in. Every mutation replaces the whole list and persists it.
    """

    def __init__(self, store, clock=time.time):
        """
        Args:
            store (AccountStore): Encrypted account store
            clock: Zero-argument function returning Unix seconds
        """
        self.store = store
        self.clock = clock
        self.current_user = None
        self.accounts = []
        self._key = None

    @property
    def is_logged_in(self):
        return self.current_user is not None and self._key is not None

    def _require_login(self):
        if not self.is_logged_in:
            raise AuthenticationFailed("No user is logged in")

    def _start(self, email, key, accounts):
        self.current_user = email
        self._key = key
        self.accounts = list(accounts)

    # Authentication

    def register(self, email, password):
        """
        Create a new user with an empty vault and log in.

        Raises:
            InvalidIdentifier: If email is not an email address
            ReservedIdentifier: If email is the administrator identifier
            UserExists: If email is already registered
            WeakPassword: If the password is too short
        """
        email = validate_email(email)
        if is_admin(email):
            raise ReservedIdentifier("This email is reserved for the administrator")
        if self.store.user_exists(email):
            raise UserExists("Email already in use")
        validate_password(password)

        salt, salt_hex = vault_crypto.generate_salt()
        self.store.save_user(email, salt_hex)
        key = vault_crypto.derive_key(password, salt)
        self.store.save([], key, email)
        self._start(email, key, [])
        logger.info(f"Registered user {email}")

    def login(self, email, password):
        """
        Unlock a user's vault.

        Raises:
            UserNotFound: If email is not registered
            AuthenticationFailed: Wrong password or unreadable vault
        """
        email = (email or "").strip()
        key, accounts = _unlock(self.store, email, password)
        self._start(email, key, accounts)
        logger.info(f"User {email} logged in with {len(accounts)} account(s)")

    def logout(self):
        self.current_user = None
        self._key = None
        self.accounts = []

    def change_password(self, current_password, new_password):
        """
        Re-encrypt the vault under a new password, keeping the salt.

        The current password is verified by decrypting the stored vault with
        it; the in-memory account list is then saved under the new key.

        Raises:
            WeakPassword: If the new password is too short or equals the current one
            AuthenticationFailed: If the current password is wrong
        """
        self._require_login()
        validate_password(new_password)
        if new_password == current_password:
            raise WeakPassword("New password must differ from the current password")

        record = self.store.load_user(self.current_user)
        if record is None:
            raise UserNotFound(f"User not found: {self.current_user}")
        try:
            _unlock(self.store, self.current_user, current_password)
        except AuthenticationFailed as e:
            raise AuthenticationFailed("Current password is incorrect") from e

        new_key = vault_crypto.derive_key(new_password, record.salt_bytes)
        self.store.save(self.accounts, new_key, self.current_user)
        self._key = new_key
        logger.info(f"Password changed for {self.current_user}")

    # Accounts

    def _persist(self, accounts):
        self.store.save(accounts, self._key, self.current_user)
        self.accounts = accounts

    def _timestamp_id(self):
        return str(int(self.clock() * 1000))

    def _unique_id(self, candidate, taken):
        """Return candidate, or candidate with a -n suffix if it is already taken."""
        account_id = candidate
        suffix = 1
        while account_id in taken:
            account_id = f"{candidate}-{suffix}"
            suffix += 1
        return account_id

    def add_account(self, fields):
        """
        Append one account and persist the list.

        Args:
            fields (dict): issuer, name, secret and optional username/password

        Returns:
            Account: The stored account
        """
        self._require_login()
        taken = {account.id for account in self.accounts}
        account_id = self._unique_id(self._timestamp_id(), taken)
        account = Account(id=account_id, **fields)
        self._persist(self.accounts + [account])
        return account

    def verify_and_add(self, fields, code):
        """
        Add an account only if the user proves possession of the secret.

        The submitted code must match the previous, current or next TOTP step.

        Raises:
            InvalidSecret: If the secret is not valid Base32
            VerificationFailed: If the code does not match
        """
        if not otp.verify(fields["secret"], code, now=self.clock()):
            raise VerificationFailed("Incorrect verification code")
        return self.add_account(fields)

    def add_accounts(self, fields_list):
        """
        Append several accounts in one save.

        Ids are ``<timestamp>-<index>``, suffixed further if that id is
        already in use.

        Returns:
            list: The stored accounts
        """
        self._require_login()
        stamp = self._timestamp_id()
        taken = {account.id for account in self.accounts}
        new_accounts = []
        for index, fields in enumerate(fields_list):
            account_id = self._unique_id(f"{stamp}-{index}", taken)
            taken.add(account_id)
            new_accounts.append(Account(id=account_id, **fields))
        self._persist(self.accounts + new_accounts)
        logger.info(f"Added {len(new_accounts)} account(s) for {self.current_user}")
        return new_accounts

    def delete_account(self, account_id):
        """
        Remove an account by id.

        Returns:
            bool: True if an account was removed
        """
        self._require_login()
        remaining = [account for account in self.accounts if account.id != account_id]
        if len(remaining) == len(self.accounts):
            return False
        self._persist(remaining)
        return True

    def search(self, term):
        """Accounts whose issuer or name contains term (case-insensitive)."""
        if not term:
            return list(self.accounts)
        return [account for account in self.accounts if account.matches(term)]

    def current_codes(self, now=None):
        """
        Compute the current code for every account.

        Returns:
            list: (account, code, seconds_remaining) tuples; code is "Error"
                for an account whose secret cannot be decoded
        """
        if now is None:
            now = self.clock()
        remaining = otp.time_remaining(now)
        results = []
        for account in self.accounts:
            try:
                code = otp.totp(account.secret, now)
            except InvalidSecret:
                logger.error(f"Failed to generate TOTP for account {account.id}")
                code = ERROR_CODE
            results.append((account, code, remaining))
        return results


class AdminConsole:
    """
    Administrator operations on user records.

    The administrator is an ordinary vault user stored under the reserved
    identifier from config.ADMIN_EMAIL; unlocking that vault proves the
    administrator's credentials.
    """

    def __init__(self, store, admin_email=None):
        self.store = store
        self.admin_email = admin_email or config.ADMIN_EMAIL
        self.authenticated = False

    def ensure_admin(self, password):
        """
        Create the administrator record if it does not exist yet.

        Returns:
            bool: True if the record was created
        """
        if self.store.user_exists(self.admin_email):
            return False
        validate_password(password)
        salt, salt_hex = vault_crypto.generate_salt()
        self.store.save_user(self.admin_email, salt_hex)
        self.store.save([], vault_crypto.derive_key(password, salt), self.admin_email)
        logger.info("Administrator account created")
        return True

    def login(self, email, password):
        """
        Raises:
            ReservedIdentifier: If email is not the administrator identifier
            UserNotFound: If the administrator record does not exist
            AuthenticationFailed: If the password is wrong
        """
        if not is_admin(email, self.admin_email):
            raise ReservedIdentifier("Administrator access denied")
        _unlock(self.store, self.admin_email, password)
        self.authenticated = True

    def _require_admin(self):
        if not self.authenticated:
            raise AuthenticationFailed("Administrator login required")

    def list_users(self):
        """Every user record except the administrator's own."""
        self._require_admin()
        return [record for record in self.store.list_users()
                if not is_admin(record.email, self.admin_email)]

    def rename_user(self, old_email, new_email):
        """Move a user to a new email; the account blob moves with the record."""
        self._require_admin()
        if is_admin(old_email, self.admin_email):
            raise ReservedIdentifier("The administrator account cannot be renamed")
        new_email = validate_email(new_email)
        if is_admin(new_email, self.admin_email):
            raise ReservedIdentifier("This email is reserved for the administrator")
        return self.store.rename_user(old_email, new_email)

    def reset_password(self, email, new_password):
        """
        Set a new password for a user, wiping their vault.

        Existing secrets are not re-encrypted: the salt is kept and an empty
        account list is saved under the key derived from the new password.
        """
        self._require_admin()
        if is_admin(email, self.admin_email):
            raise ReservedIdentifier("The administrator password cannot be reset here")
        validate_password(new_password)
        record = self.store.load_user(email)
        if record is None:
            raise UserNotFound(f"User not found: {email}")
        new_key = vault_crypto.derive_key(new_password, record.salt_bytes)
        self.store.save([], new_key, email)
        logger.warning(f"Password reset for {email}; vault wiped")

    def delete_user(self, email):
        self._require_admin()
        if is_admin(email, self.admin_email):
            raise ReservedIdentifier("The administrator account cannot be deleted")
        if not self.store.user_exists(email):
            raise UserNotFound(f"User not found: {email}")
        self.store.delete_user(email)


def reset_user(store, email):
    """
    Forgotten-password reset from the login screen.

    Deletes the user record and vault so the identifier can be registered
    again. Nothing is recoverable afterwards.

    Raises:
        UserNotFound: If email is not registered
        ReservedIdentifier: If email is the administrator identifier
    """
    email = (email or "").strip()
    if is_admin(email):
        raise ReservedIdentifier("The administrator account cannot be reset here")
    if not store.user_exists(email):
        raise UserNotFound(f"User not found: {email}")
    store.delete_user(email)
    logger.warning(f"User {email} reset; all vault data deleted")
