"""Local file storage for demand PDFs, plus expiring signed download links.

Paths handed around the app are relative to ``storage_dir``. Signed links
carry a JWT (python-jose, same secret as auth) whose ``path`` claim names the
file and whose ``exp`` bounds the link's lifetime.
"""

import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

from jose import JWTError, jwt

from conformidade_platform.app.config import get_settings

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")
_LINK_PURPOSE = "file_download"


class StorageError(Exception):
    """Raised for missing files and paths outside the storage root."""


def _root() -> Path:
    root = Path(get_settings().storage_dir).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def resolve_path(relative_path: str) -> Path:
    root = _root()
    path = (root / relative_path).resolve()
    if root != path and root not in path.parents:
        raise StorageError(f"Path outside storage: {relative_path}")
    return path


def save_file(folder: str, filename: str, content: bytes) -> str:
    """Write ``content`` under ``folder`` and return its relative path."""
    safe_name = _UNSAFE.sub("_", filename or "arquivo")
    safe_folder = "/".join(_UNSAFE.sub("_", part) for part in folder.split("/") if part)
    relative = f"{safe_folder}/{uuid.uuid4().hex[:8]}_{safe_name}"
    path = resolve_path(relative)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    logger.info("Stored %s (%d bytes)", relative, len(content))
    return relative


def read_file(relative_path: str) -> bytes:
    path = resolve_path(relative_path)
    if not path.is_file():
        raise StorageError(f"File not found: {relative_path}")
    return path.read_bytes()


def create_signed_token(relative_path: str, ttl_days: int | None = None) -> str:
    settings = get_settings()
    days = settings.signed_link_ttl_days if ttl_days is None else ttl_days
    payload = {
        "path": relative_path,
        "purpose": _LINK_PURPOSE,
        "exp": datetime.now(timezone.utc) + timedelta(days=days),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_signed_token(token: str) -> str | None:
    """Return the file path the token grants, or None if invalid/expired."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    if payload.get("purpose") != _LINK_PURPOSE:
        return None
    return payload.get("path")


def signed_url(relative_path: str, ttl_days: int | None = None) -> str:
    base = get_settings().public_base_url.rstrip("/")
    return f"{base}/api/files/signed/{create_signed_token(relative_path, ttl_days)}"
