"""
Kudumbam — Security Utilities
Password hashing, token generation, input sanitization and
Fernet encryption for the persisted client storage.
"""

import base64
import hashlib
import hmac
import re
import secrets

from cryptography.fernet import Fernet, InvalidToken


PBKDF2_ITERATIONS = 100000


# ══════════════════════════════════════════
# Passwords
# ══════════════════════════════════════════

def hash_password(password: str, salt: str | None = None) -> tuple[str, str]:
    """Hash password with salt using PBKDF2-SHA256. Returns (hash, salt)."""
    if salt is None:
        salt = secrets.token_hex(16)
    password_hash = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt.encode("utf-8"),
        PBKDF2_ITERATIONS,
    ).hex()
    return password_hash, salt


def verify_password(password: str, password_hash: str, salt: str) -> bool:
    candidate, _ = hash_password(password, salt)
    return hmac.compare_digest(candidate, password_hash)


# ══════════════════════════════════════════
# Tokens
# ══════════════════════════════════════════

def generate_token() -> str:
    """64 hex chars, used for session ids and invitation codes."""
    return secrets.token_hex(32)


def generate_enrollment_number() -> str:
    return f"ENR{secrets.randbelow(1000000):06d}"


# ══════════════════════════════════════════
# Encryption (client storage at rest)
# ══════════════════════════════════════════

def derive_fernet_key(secret: str) -> bytes:
    """Derive a Fernet key from an app secret (never hardcode the key itself)."""
    key = hashlib.sha256(secret.encode()).digest()
    return base64.urlsafe_b64encode(key)


def encrypt_text(plaintext: str, secret: str) -> str:
    if not plaintext:
        return ""
    return Fernet(derive_fernet_key(secret)).encrypt(plaintext.encode()).decode()


def decrypt_text(ciphertext: str, secret: str) -> str:
    """Decrypt; returns "" when the payload was written with another secret."""
    if not ciphertext:
        return ""
    try:
        return Fernet(derive_fernet_key(secret)).decrypt(ciphertext.encode()).decode()
    except InvalidToken:
        return ""


# ══════════════════════════════════════════
# Input Sanitization
# ══════════════════════════════════════════

def sanitize_input(text: str | None, max_length: int = 5000) -> str:
    """
    Clean user input before it is stored.
    Removes HTML tags and control characters, trims whitespace, limits length.
    """
    if not text:
        return ""
    text = re.sub(r"<[^>]+>", "", str(text))
    text = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", text)
    return text.strip()[:max_length]


def extract_bearer_token(header_value: str | None) -> str | None:
    if not header_value:
        return None
    match = re.match(r"Bearer\s+(.*)$", header_value.strip(), re.IGNORECASE)
    if not match:
        return None
    return match.group(1).strip() or None
