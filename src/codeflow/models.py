"""
Data records shared across CodeFlow.

- Account: one 2FA credential held in a user's encrypted vault
- UserRecord: the per-user salt record, stored in plaintext
- MigrationEntry: one decoded entry of a bulk migration payload (transient)
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Account:
    """
    A single 2FA account.

    The secret is always Base32 text; it is only decoded to bytes when a code
    is computed.
    """
    id: str
    issuer: str
    name: str
    secret: str
    username: Optional[str] = None
    password: Optional[str] = None

    def to_dict(self):
        """Serialize to the plaintext record shape; optional fields are omitted when unset."""
        data = {
            "id": self.id,
            "issuer": self.issuer,
            "name": self.name,
            "secret": self.secret,
        }
        if self.username is not None:
            data["username"] = self.username
        if self.password is not None:
            data["password"] = self.password
        return data

    @classmethod
    def from_dict(cls, data):
        """
        Build an Account from a plaintext record.

        Raises:
            KeyError: If a required field is missing
            TypeError: If data is not a mapping or a field has the wrong type
        """
        if not isinstance(data, dict):
            raise TypeError(f"account record must be an object, got {type(data).__name__}")
        account = cls(
            id=data["id"],
            issuer=data["issuer"],
            name=data["name"],
            secret=data["secret"],
            username=data.get("username"),
            password=data.get("password"),
        )
        for attr in ("id", "issuer", "name", "secret"):
            if not isinstance(getattr(account, attr), str):
                raise TypeError(f"account field '{attr}' must be a string")
        return account

    def matches(self, term):
        """Case-insensitive substring match on issuer or name."""
        term = term.lower()
        return term in self.issuer.lower() or term in self.name.lower()


@dataclass
class UserRecord:
    """Plaintext user record: the identifier plus the hex-encoded PBKDF2 salt."""
    email: str
    salt: str

    @property
    def salt_bytes(self):
        return bytes.fromhex(self.salt)

    def to_dict(self):
        return {"salt": self.salt, "email": self.email}

    @classmethod
    def from_dict(cls, data):
        return cls(email=data["email"], salt=data["salt"])


@dataclass
class MigrationEntry:
    """One OTP parameter block decoded from a bulk migration payload."""
    secret: bytes = b""
    name: str = ""
    issuer: str = ""
    algorithm: int = 0
    digits: int = 0
    type: int = 0
    counter: int = 0


@dataclass
class MigrationPayload:
    """A decoded bulk migration payload."""
    entries: list = field(default_factory=list)
    version: int = 0
    batch_size: int = 0
    batch_index: int = 0
    batch_id: int = 0
