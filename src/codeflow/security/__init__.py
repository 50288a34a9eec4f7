"""
Security-related modules for CodeFlow

This package provides the vault side of the application:
- Password-based key derivation and AES-GCM envelope encryption
- The key/value persistence substrate
- The encrypted account store and user records
- Session, administrator, import and export operations
"""

from .kv_store import KeyValueStore, MemoryStore, JsonFileStore
from .account_store import AccountStore
from .vault_session import VaultSession, AdminConsole, reset_user
from .importers import SecretImporter, parse_json_accounts
from .exporters import SecretExporter

__all__ = [
    'KeyValueStore',
    'MemoryStore',
    'JsonFileStore',
    'AccountStore',
    'VaultSession',
    'AdminConsole',
    'reset_user',
    'SecretImporter',
    'parse_json_accounts',
    'SecretExporter',
]
