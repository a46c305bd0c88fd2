"""
Kudumbam — Client Storage
Key/value persistence for the session tokens and account snapshots the
client reads on every page load.
"""

import json
from pathlib import Path
from typing import Any, Optional

from kudumbam.config import get_settings
from kudumbam.utils.logger import logger
from kudumbam.utils.security import decrypt_text, encrypt_text


USER_SESSION_TOKEN = "user_session_token"
USER_DATA = "user_data"
ADMIN_SESSION_TOKEN = "admin_session_token"
ADMIN_USER = "admin_user"


class ClientStorage:
    """In-memory store; subclasses persist after every write."""

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._persist()

    def remove(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)
        self._persist()

    def clear(self) -> None:
        self._data.clear()
        self._persist()

    def snapshot(self) -> dict[str, Any]:
        return dict(self._data)

    def _persist(self) -> None:
        pass

    # --- session helpers ---

    @property
    def session_token(self) -> Optional[str]:
        return self.get(USER_SESSION_TOKEN)

    @property
    def user_data(self) -> Optional[dict]:
        return self.get(USER_DATA)

    @property
    def admin_session_token(self) -> Optional[str]:
        return self.get(ADMIN_SESSION_TOKEN)

    def save_session(self, token: str, user: dict) -> None:
        self._data[USER_SESSION_TOKEN] = token
        self._data[USER_DATA] = user
        self._persist()

    def update_user(self, user: dict) -> None:
        self.set(USER_DATA, user)

    def clear_session(self) -> None:
        self.remove(USER_SESSION_TOKEN, USER_DATA)

    def save_admin_session(self, token: str, admin: dict) -> None:
        self._data[ADMIN_SESSION_TOKEN] = token
        self._data[ADMIN_USER] = admin
        self._persist()

    def clear_admin_session(self) -> None:
        self.remove(ADMIN_SESSION_TOKEN, ADMIN_USER)


class MemoryStorage(ClientStorage):
    """Lives as long as the process (scripts and tests)."""


class EncryptedFileStorage(ClientStorage):
    """JSON document encrypted with Fernet, rewritten on every change."""

    def __init__(self, path: str | Path, secret: Optional[str] = None):
        self.path = Path(path)
        self.secret = secret or get_settings().app_secret
        super().__init__(self._load())

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        plaintext = decrypt_text(self.path.read_text(encoding="utf-8").strip(), self.secret)
        if not plaintext:
            logger.warning(f"🔒 Client storage at {self.path} could not be decrypted; starting empty")
            return {}
        try:
            return json.loads(plaintext)
        except json.JSONDecodeError:
            logger.warning(f"🔒 Client storage at {self.path} is corrupt; starting empty")
            return {}

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(encrypt_text(json.dumps(self._data), self.secret), encoding="utf-8")


def open_storage(path: Optional[str] = None) -> ClientStorage:
    """Encrypted file storage when a path is configured, else memory."""
    path = path if path is not None else get_settings().client_storage_path
    if path:
        return EncryptedFileStorage(path)
    return MemoryStorage()
