from __future__ import annotations
import base64
import hashlib
import json
import os
from typing import Dict
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from copytrade.config import get_settings

settings = get_settings()


def _get_encryption_key() -> bytes:
    """Derive a 32-byte AES key from the configured encryption key."""
    raw_key = settings.credentials_encryption_key
    if not raw_key:
        raise ValueError("credentials_encryption_key is not configured")
    if len(raw_key) == 64:
        try:
            return bytes.fromhex(raw_key)
        except ValueError:
            pass
    return hashlib.sha256(raw_key.encode()).digest()


def encrypt_credentials(credentials: Dict[str, str]) -> str:
    """Encrypt venue credentials with AES-256-GCM. Returns "iv_b64:ciphertext_b64"."""
    key = _get_encryption_key()
    iv = os.urandom(12)
    encrypted = AESGCM(key).encrypt(iv, json.dumps(credentials).encode(), None)
    return f"{base64.b64encode(iv).decode()}:{base64.b64encode(encrypted).decode()}"


def decrypt_credentials(encrypted_credentials: str) -> Dict[str, str]:
    parts = encrypted_credentials.split(":")
    if len(parts) != 2:
        raise ValueError("Invalid encrypted credentials format")
    iv_b64, encrypted_b64 = parts
    key = _get_encryption_key()
    plaintext = AESGCM(key).decrypt(base64.b64decode(iv_b64), base64.b64decode(encrypted_b64), None)
    return json.loads(plaintext)
