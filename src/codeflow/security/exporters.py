"""
Export functionality for CodeFlow accounts

This module provides export mechanisms for decrypted accounts:
- Plaintext JSON exports, in the same shape the JSON importer accepts
- otpauth:// provisioning URIs (built with pyotp) for single accounts
- QR code images of those URIs (rendered with qrcode)

Plaintext exports contain every secret unprotected; the caller is warned
and the file is created readable by the owner only.
"""

import os
import json
import logging
import platform

import pyotp
import qrcode

logger = logging.getLogger(__name__)


def account_to_export_record(account):
    """Project an Account into the JSON import/export shape (no id)."""
    record = {
        "issuer": account.issuer,
        "name": account.name,
        "secret": account.secret,
    }
    if account.username is not None:
        record["username"] = account.username
    if account.password is not None:
        record["password"] = account.password
    return record


def provisioning_uri(account):
    """
    Build the otpauth://totp/ URI for an account.

    Returns:
        str: URI with label "issuer:name", secret and issuer parameters
    """
    totp = pyotp.TOTP(account.secret)
    return totp.provisioning_uri(name=account.name, issuer_name=account.issuer or None)


def make_qr_image(uri, output_path=None):
    """
    Render a URI as a QR code image.

    Args:
        uri (str): Text to encode, typically a provisioning URI
        output_path (str): Where to save a PNG, or None to only return it

    Returns:
        The qrcode image object
    """
    qr = qrcode.QRCode(error_correction=qrcode.constants.ERROR_CORRECT_M, box_size=8, border=4)
    qr.add_data(uri)
    qr.make(fit=True)
    image = qr.make_image()
    if output_path is not None:
        image.save(str(output_path))
        logger.info(f"Saved QR code to {output_path}")
    return image


class SecretExporter:
    """
    Handles exporting CodeFlow accounts in formats compatible with other applications
    """

    def __init__(self, exports_path):
        """
        Args:
            exports_path: Default directory for export files
        """
        self.exports_path = exports_path

    def _resolve(self, path, default_name):
        if not path:
            os.makedirs(self.exports_path, exist_ok=True)
            return os.path.join(self.exports_path, default_name)
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)
        return path

    def export_to_json(self, accounts, export_path=None):
        """
        Write accounts to a plaintext JSON array.

        Args:
            accounts (list): Account objects
            export_path (str): Destination, defaults to exports_path/codeflow-accounts.json

        Returns:
            str: The path written

        Raises:
            ValueError: If there are no accounts to export
        """
        if not accounts:
            raise ValueError("No accounts to export")

        export_path = self._resolve(export_path, "codeflow-accounts.json")
        records = [account_to_export_record(account) for account in accounts]
        with open(export_path, 'w', encoding='utf-8') as f:
            json.dump(records, f, indent=2, ensure_ascii=False)
        if platform.system() != "Windows":
            os.chmod(export_path, 0o600)

        logger.warning(f"Exported {len(records)} account(s) as plaintext JSON - this format is insecure for storage")
        return export_path

    def export_to_qr(self, account, export_path=None):
        """
        Save an account's provisioning URI as a QR code PNG.

        Returns:
            str: The path written
        """
        safe_name = "".join(ch if ch.isalnum() else "_" for ch in f"{account.issuer}_{account.name}")
        export_path = self._resolve(export_path, f"{safe_name}.png")
        make_qr_image(provisioning_uri(account), export_path)
        return export_path
