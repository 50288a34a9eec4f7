"""
Encrypted Account Store

Persists each user's account list as one encrypted blob and keeps the
plaintext user record (email + salt) alongside it:

    user:<email>      -> {"salt": "<hex>", "email": "<email>"}
    accounts:<email>  -> hex(IV):hex(ciphertext||tag)

Saving always replaces the whole blob; there is no partial update or merge,
so when two writers race for the same user the last save wins.
"""

import json
import logging

from .. import config
from ..errors import CorruptData, UserExists, UserNotFound
from ..models import Account, UserRecord
from . import vault_crypto

logger = logging.getLogger(__name__)


def user_key(email):
    return f"{config.USER_KEY_PREFIX}{email}"


def accounts_key(email):
    return f"{config.ACCOUNTS_KEY_PREFIX}{email}"


def serialize_accounts(accounts):
    """Serialize an account list to its canonical JSON text."""
    return json.dumps([account.to_dict() for account in accounts], ensure_ascii=False)


def deserialize_accounts(text):
    """
    Parse the canonical JSON text back into Account objects.

    Raises:
        CorruptData: If the text is not a JSON array of account records
    """
    try:
        records = json.loads(text)
    except ValueError as e:
        raise CorruptData("Decrypted account data is not valid JSON") from e
    if not isinstance(records, list):
        raise CorruptData("Decrypted account data is not a list")
    try:
        return [Account.from_dict(record) for record in records]
    except (KeyError, TypeError) as e:
        raise CorruptData(f"Invalid account record: {e}") from e


class AccountStore:
    """
    Encrypted account persistence on top of a KeyValueStore.

    The store never holds keys or passwords; callers derive the key with
    vault_crypto.derive_key() and pass it to save()/load().
    """

    def __init__(self, kv):
        """
        Args:
            kv (KeyValueStore): Persistence substrate
        """
        self.kv = kv

    # Account blob

    def save(self, accounts, key, email):
        """
        Encrypt and persist the full account list, replacing any previous blob.

        Args:
            accounts (list): Account objects in display order
            key (bytes): Key derived from the user's password and salt
            email (str): User identifier
        """
        envelope = vault_crypto.encrypt(serialize_accounts(accounts), key)
        self.kv.set(accounts_key(email), envelope)
        logger.debug(f"Saved {len(accounts)} account(s) for {email}")

    def load(self, key, email):
        """
        Load and decrypt a user's account list.

        Returns:
            list: Account objects; empty if the user has no saved blob

        Raises:
            MalformedEnvelope: If the stored blob is not envelope text
            AuthenticationFailed: If the key is wrong or the blob was tampered with
            CorruptData: If the decrypted text is not a valid account list
        """
        envelope = self.kv.get(accounts_key(email))
        if not envelope:
            return []
        return deserialize_accounts(vault_crypto.decrypt(envelope, key))

    def has_accounts_blob(self, email):
        return self.kv.get(accounts_key(email)) is not None

    # User records

    def save_user(self, email, salt_hex):
        """Create or overwrite the user record for email."""
        record = UserRecord(email=email, salt=salt_hex)
        self.kv.set(user_key(email), json.dumps(record.to_dict()))
        return record

    def load_user(self, email):
        """
        Return the UserRecord for email, or None if it does not exist.

        Raises:
            CorruptData: If the stored record cannot be parsed
        """
        raw = self.kv.get(user_key(email))
        if raw is None:
            return None
        try:
            record = UserRecord.from_dict(json.loads(raw))
            bytes.fromhex(record.salt)
        except (ValueError, KeyError, TypeError) as e:
            raise CorruptData(f"User record for {email} is corrupted") from e
        return record

    def user_exists(self, email):
        return self.kv.get(user_key(email)) is not None

    def delete_user(self, email):
        """Delete the user record and the account blob together."""
        self.kv.apply(deletes=[accounts_key(email), user_key(email)])
        logger.info(f"Deleted user {email}")

    def rename_user(self, old_email, new_email):
        """
        Move a user's record and account blob to a new identifier.

        The new keys are written before the old ones are removed, in one store
        operation, so the blob is never left under an identifier without a
        matching user record. The salt is preserved, so the user's password
        keeps working.

        Raises:
            UserNotFound: If old_email has no record
            UserExists: If new_email is already taken
        """
        if old_email == new_email:
            return self.load_user(old_email)

        record = self.load_user(old_email)
        if record is None:
            raise UserNotFound(f"User not found: {old_email}")
        if self.user_exists(new_email):
            raise UserExists(f"Email already in use: {new_email}")

        renamed = UserRecord(email=new_email, salt=record.salt)
        updates = {user_key(new_email): json.dumps(renamed.to_dict())}
        envelope = self.kv.get(accounts_key(old_email))
        if envelope is not None:
            updates[accounts_key(new_email)] = envelope

        self.kv.apply(updates=updates, deletes=[accounts_key(old_email), user_key(old_email)])
        logger.info(f"Renamed user {old_email} to {new_email}")
        return renamed

    def list_users(self):
        """Return every UserRecord, sorted by email."""
        users = []
        for key in self.kv.keys():
            if key.startswith(config.USER_KEY_PREFIX):
                record = self.load_user(key[len(config.USER_KEY_PREFIX):])
                if record is not None:
                    users.append(record)
        return sorted(users, key=lambda record: record.email.lower())

    def clear_all(self):
        """Remove every user record and account blob in the store."""
        prefixes = (config.USER_KEY_PREFIX, config.ACCOUNTS_KEY_PREFIX)
        doomed = [key for key in self.kv.keys() if key.startswith(prefixes)]
        self.kv.apply(deletes=doomed)
        logger.warning(f"Cleared all vault data ({len(doomed)} key(s))")
