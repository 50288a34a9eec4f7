"""
CodeFlow error taxonomy

Every failure raised by the OTP engine, the envelope encryption layer, the
account store and the importers is a CodeFlowError subclass. The core never
retries; callers decide how to present a failure to the user.
"""


class CodeFlowError(Exception):
    """Base class for all CodeFlow errors."""


class InvalidEncoding(CodeFlowError):
    """Text is not valid Base32."""


class InvalidSecret(CodeFlowError):
    """An OTP secret could not be decoded before computing the HMAC."""


class MalformedEnvelope(CodeFlowError):
    """Ciphertext text does not split into two well-formed hex fields."""


class AuthenticationFailed(CodeFlowError):
    """
    AES-GCM tag verification failed.

    Raised for both a wrong password and corrupted or tampered data; the two
    cases are intentionally indistinguishable.
    """


class CorruptData(CodeFlowError):
    """Decrypted text does not parse as the expected structure."""


class EmptyMigrationPayload(CodeFlowError):
    """A migration payload decoded to zero accounts."""


class MissingSecret(CodeFlowError):
    """A single-account URI carries no secret parameter."""


class UnrecognizedFormat(CodeFlowError):
    """Input matches neither the bulk migration nor the single-account scheme."""


class UserNotFound(CodeFlowError):
    """No user record exists for the identifier."""


class UserExists(CodeFlowError):
    """A user record already exists for the identifier."""


class ReservedIdentifier(CodeFlowError):
    """The identifier is reserved for the administrator."""


class WeakPassword(CodeFlowError):
    """A new password does not satisfy the password policy."""


class VerificationFailed(CodeFlowError):
    """An enrollment verification code did not match the secret."""


class InvalidImport(CodeFlowError):
    """
    A bulk import document or one of its entries is invalid.

    Attributes:
        index: Position of the failing entry, or None for document-level errors
    """

    def __init__(self, message, index=None):
        super().__init__(message)
        self.index = index


class InvalidIdentifier(CodeFlowError):
    """A user identifier is not a valid email address."""
