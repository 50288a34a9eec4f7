"""
Import functionality for CodeFlow accounts

This module turns external data into Account fields ready for a VaultSession:
- Plaintext JSON files: an array of {issuer?, name, secret, username?, password?}
- Scanned QR text: otpauth-migration:// bulk exports and otpauth://totp/ URIs
- QR code images (scanned with pyzbar)

Every importer raises a CodeFlowError subclass on failure; a JSON entry that
lacks a name or secret rejects the whole file with an index-qualified error.
"""

import os
import json
import logging

from ..errors import InvalidImport
from ..totp import migration

logger = logging.getLogger(__name__)


def parse_json_accounts(text):
    """
    Parse a plaintext JSON account list.

    Args:
        text (str): JSON document

    Returns:
        list: Account field dicts (issuer defaults to name)

    Raises:
        InvalidImport: If the document is not a JSON array, an entry is missing
            'name' or 'secret' (with the entry's index), or the array is empty
    """
    try:
        data = json.loads(text)
    except ValueError as e:
        raise InvalidImport(f"File is not valid JSON: {e}") from e

    if not isinstance(data, list):
        raise InvalidImport("The JSON file must contain an array (list) of accounts")

    accounts = []
    for index, item in enumerate(data):
        if not isinstance(item, dict) or not item.get("name") or not item.get("secret"):
            raise InvalidImport(
                f"Invalid entry at index {index}: 'name' and 'secret' are required",
                index=index,
            )
        fields = {
            "issuer": item.get("issuer") or item["name"],
            "name": item["name"],
            "secret": item["secret"],
        }
        for optional in ("username", "password"):
            if item.get(optional) is not None:
                fields[optional] = item[optional]
        accounts.append(fields)

    if not accounts:
        raise InvalidImport("No valid accounts found in the file")
    return accounts


class SecretImporter:
    """
    Handles importing CodeFlow accounts from various formats
    """

    def import_from_file(self, import_path):
        """
        Import accounts from a file, detecting its format.

        Args:
            import_path: Path to a JSON file or a text file holding an otpauth URI

        Returns:
            migration.ScanResult: kind "json", "migration" or "single" plus the
                account field dicts

        Raises:
            InvalidImport: If the file is missing, unreadable or in an unknown format
        """
        if not import_path or not os.path.exists(import_path):
            raise InvalidImport(f"File not found: {import_path}")

        debug_name = os.path.basename(import_path)
        logger.debug(f"Attempting to import from: {debug_name}")
        try:
            with open(import_path, 'r', encoding='utf-8') as f:
                text = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise InvalidImport(f"Could not read the selected file: {e}") from e

        detected_format = self._detect_format(text)
        logger.debug(f"Detected format: {detected_format}")

        if detected_format == "json":
            accounts = parse_json_accounts(text)
            logger.info(f"Imported {len(accounts)} account(s) from JSON")
            return migration.ScanResult("json", accounts)
        if detected_format == "uri":
            return self.import_from_text(text)
        raise InvalidImport(f"Unsupported format in {debug_name}")

    def _detect_format(self, text):
        """
        Detect the format of the import data

        Returns:
            str: "json", "uri" or "unknown"
        """
        stripped = text.strip()
        if stripped.startswith(("[", "{")):
            return "json"
        if stripped.startswith((migration.MIGRATION_PREFIX, migration.TOTP_PREFIX)):
            return "uri"
        return "unknown"

    def import_from_text(self, text):
        """
        Import from scanned or pasted QR text.

        Returns:
            migration.ScanResult

        Raises:
            UnrecognizedFormat, MissingSecret, EmptyMigrationPayload, CorruptData
        """
        result = migration.parse_scanned_text(text)
        logger.info(f"Imported {len(result.accounts)} account(s) from {result.kind} URI")
        return result

    def import_from_image(self, image_path):
        """
        Scan a QR code image and import what it holds.

        Returns:
            migration.ScanResult
        """
        from ..totp import qr

        result = qr.scan_image(image_path)
        logger.info(f"Imported {len(result.accounts)} account(s) from QR image")
        return result
