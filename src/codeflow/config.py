"""
CodeFlow Configuration System

Manages application paths, settings, and environment detection with features:
- Multi-platform data directory selection (Windows, macOS, Linux)
- Portable mode and per-path overrides via environment variables
- OTP and key-derivation parameters shared by the crypto core
- The reserved administrator identifier

Paths are computed at import time; directories are created by the components
that write to them.
"""

import os
import platform

# Application information
APP_NAME = "CodeFlow"
APP_VERSION = "0.1.0"


def _env_flag(name):
    return os.environ.get(name, '').lower() in ('1', 'true', 'yes')


def default_data_directory():
    """
    Return the platform-appropriate application data directory:
    - Windows: %APPDATA%\\CodeFlow
    - macOS: ~/Library/Application Support/CodeFlow
    - Linux: ~/.codeflow

    Honours CODEFLOW_DATA_DIR and CODEFLOW_PORTABLE.

    Returns:
        str: Path to the application data directory (not created)
    """
    env_data_dir = os.environ.get('CODEFLOW_DATA_DIR')
    if env_data_dir:
        return env_data_dir

    if _env_flag('CODEFLOW_PORTABLE'):
        return os.path.join(os.getcwd(), '.codeflow')

    if platform.system() == "Windows":
        base_dir = os.environ.get('APPDATA')
        if not base_dir:
            base_dir = os.path.join(os.path.expanduser('~'), 'AppData', 'Roaming')
        return os.path.join(base_dir, APP_NAME)
    if platform.system() == "Darwin":
        return os.path.join(os.path.expanduser('~'), 'Library', 'Application Support', APP_NAME)
    return os.path.join(os.path.expanduser('~'), '.codeflow')


# Application directories
DATA_DIR = default_data_directory()
STORE_FILE = os.environ.get('CODEFLOW_STORE_FILE') or os.path.join(DATA_DIR, "store.json")
EXPORTS_DIR = os.environ.get('CODEFLOW_EXPORTS_DIR') or os.path.join(DATA_DIR, "exports")
LOG_DIR = os.environ.get('CODEFLOW_LOG_DIR') or os.path.join(DATA_DIR, "logs")

# OTP parameters (RFC 4226 / RFC 6238, SHA-1 only)
TOTP_PERIOD = 30
TOTP_DIGITS = 6
VERIFY_WINDOW = 1  # accepted steps either side of the current counter

# Key derivation and envelope encryption
PBKDF2_ITERATIONS = 100000
SALT_BYTES = 16
IV_BYTES = 12
KEY_BYTES = 32
ENVELOPE_DELIMITER = ":"

# Storage namespaces
USER_KEY_PREFIX = "user:"
ACCOUNTS_KEY_PREFIX = "accounts:"

# Reserved administrator identifier; registration rejects it
ADMIN_EMAIL = os.environ.get('CODEFLOW_ADMIN_EMAIL') or "admin@codeflow.local"

MIN_PASSWORD_LENGTH = 8

# Debug mode and logging
DEBUG = _env_flag('CODEFLOW_DEBUG')
LOG_TO_FILE = _env_flag('CODEFLOW_LOG')
