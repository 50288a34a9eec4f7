"""
CodeFlow Authenticator

A client-side 2FA credential vault: RFC 6238 TOTP codes, secrets stored
encrypted under a user password (PBKDF2 + AES-256-GCM), and bulk import of
authenticator migration QR codes.
"""

from .config import APP_NAME, APP_VERSION

__version__ = APP_VERSION

__all__ = ['APP_NAME', 'APP_VERSION', '__version__']
