from __future__ import annotations

import base64
import hashlib
import hmac
import json
import os
import secrets
import threading
import time
import uuid
from pathlib import Path
from typing import Any, Optional


SESSION_TTL_SECONDS = 60 * 60 * 12
PASSWORD_RESET_TTL_SECONDS = int(os.environ.get("PASSWORD_RESET_TTL_SECONDS") or "3600")
MIN_PASSWORD_LENGTH = 6

_BASE_DIR = Path(__file__).resolve().parent.parent
_DATA_DIR = Path(os.environ.get("CLOTHING_RENTAL_DATA_DIR") or (_BASE_DIR / "data"))
_STORE_PATH = _DATA_DIR / "staff_accounts.json"
_REVOKED_TOKENS_PATH = _DATA_DIR / "revoked_sessions.json"
_LOCK = threading.Lock()


def _require_session_secret() -> bytes:
    raw = (os.environ.get("SESSION_SIGNING_SECRET") or "").strip()
    if len(raw) < 32:
        raise RuntimeError("SESSION_SIGNING_SECRET must be set and at least 32 characters long.")
    return raw.encode("utf-8")


_SESSION_SECRET = _require_session_secret()


def _ensure_data_dir() -> None:
    _DATA_DIR.mkdir(parents=True, exist_ok=True)


def _normalize_email(raw_email: str | None) -> str:
    return (raw_email or "").strip().lower()


def _password_hash(password: str, salt: str) -> str:
    raw = hashlib.pbkdf2_hmac(
        "sha256",
        (password or "").encode("utf-8"),
        salt.encode("utf-8"),
        120000,
    )
    return raw.hex()


def _token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _load_store_unlocked() -> dict[str, Any]:
    _ensure_data_dir()
    if not _STORE_PATH.exists():
        return {"users": {}, "resetTokens": {}}
    try:
        payload = json.loads(_STORE_PATH.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, ValueError):
        return {"users": {}, "resetTokens": {}}
    if not isinstance(payload, dict):
        return {"users": {}, "resetTokens": {}}
    if not isinstance(payload.get("users"), dict):
        payload["users"] = {}
    if not isinstance(payload.get("resetTokens"), dict):
        payload["resetTokens"] = {}
    return payload


def _save_store_unlocked(store: dict[str, Any]) -> None:
    _ensure_data_dir()
    _STORE_PATH.write_text(json.dumps(store, ensure_ascii=True, indent=2), encoding="utf-8")


def _load_revoked_tokens_unlocked() -> dict[str, float]:
    _ensure_data_dir()
    if not _REVOKED_TOKENS_PATH.exists():
        return {}
    try:
        payload = json.loads(_REVOKED_TOKENS_PATH.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, ValueError):
        return {}
    if not isinstance(payload, dict):
        return {}
    out: dict[str, float] = {}
    for digest, expires_at in payload.items():
        try:
            out[str(digest)] = float(expires_at)
        except (TypeError, ValueError):
            continue
    return out


def _save_revoked_tokens_unlocked(tokens: dict[str, float]) -> None:
    _ensure_data_dir()
    _REVOKED_TOKENS_PATH.write_text(json.dumps(tokens, ensure_ascii=True, indent=2), encoding="utf-8")


def _validate_password(password: str | None) -> str:
    trimmed = str(password or "").strip()
    if len(trimmed) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    return trimmed


def _public_account(email: str, raw_user: dict[str, Any]) -> dict[str, Any]:
    return {
        "userID": raw_user.get("userID"),
        "email": email,
        "createdAt": raw_user.get("createdAt"),
    }


def create_account(email: str, password: str) -> dict[str, Any]:
    key = _normalize_email(email)
    if not key or "@" not in key:
        raise ValueError("A valid email address is required.")
    trimmed = _validate_password(password)
    with _LOCK:
        store = _load_store_unlocked()
        users = store.setdefault("users", {})
        if key in users:
            raise ValueError("An account with this email already exists.")
        salt = secrets.token_hex(16)
        users[key] = {
            "userID": str(uuid.uuid4()),
            "passwordSalt": salt,
            "passwordHash": _password_hash(trimmed, salt),
            "createdAt": int(time.time()),
        }
        _save_store_unlocked(store)
        return _public_account(key, users[key])


def get_account(email: str) -> dict[str, Any] | None:
    key = _normalize_email(email)
    with _LOCK:
        raw_user = _load_store_unlocked().get("users", {}).get(key)
    if not raw_user:
        return None
    return _public_account(key, raw_user)


def verify_password(email: str, password: str) -> dict[str, Any] | None:
    key = _normalize_email(email)
    candidate = (password or "").strip()
    if not key or not candidate:
        return None
    with _LOCK:
        existing = _load_store_unlocked().get("users", {}).get(key) or {}
    stored_hash = existing.get("passwordHash")
    stored_salt = existing.get("passwordSalt")
    if not stored_hash or not stored_salt:
        return None
    if not hmac.compare_digest(_password_hash(candidate, stored_salt), stored_hash):
        return None
    return _public_account(key, existing)


def request_password_reset(email: str) -> str | None:
    """Issues a one-time reset token; delivering it is up to the caller."""
    key = _normalize_email(email)
    with _LOCK:
        store = _load_store_unlocked()
        if key not in store.get("users", {}):
            return None
        now = time.time()
        tokens = store.setdefault("resetTokens", {})
        for digest, entry in list(tokens.items()):
            if now >= float(entry.get("expiresAt") or 0) or entry.get("email") == key:
                tokens.pop(digest, None)
        token = secrets.token_urlsafe(32)
        tokens[_token_digest(token)] = {"email": key, "expiresAt": now + PASSWORD_RESET_TTL_SECONDS}
        _save_store_unlocked(store)
    return token


def reset_password(token: str, new_password: str) -> bool:
    trimmed = _validate_password(new_password)
    digest = _token_digest(token or "")
    with _LOCK:
        store = _load_store_unlocked()
        entry = store.get("resetTokens", {}).pop(digest, None)
        if not entry or time.time() >= float(entry.get("expiresAt") or 0):
            _save_store_unlocked(store)
            return False
        user = store.get("users", {}).get(entry.get("email"))
        if not user:
            _save_store_unlocked(store)
            return False
        salt = secrets.token_hex(16)
        user["passwordSalt"] = salt
        user["passwordHash"] = _password_hash(trimmed, salt)
        user["passwordUpdatedAt"] = int(time.time())
        _save_store_unlocked(store)
    return True


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


def _sign(encoded: str) -> str:
    return _b64encode(hmac.new(_SESSION_SECRET, encoded.encode("ascii"), hashlib.sha256).digest())


def _read_session_token(token: str) -> dict[str, Any] | None:
    try:
        encoded, signature = token.split(".", 1)
        if not hmac.compare_digest(_sign(encoded), signature):
            return None
        claims = json.loads(_b64decode(encoded).decode("utf-8"))
    except (TypeError, ValueError, UnicodeError):
        return None
    if not isinstance(claims, dict) or not claims.get("userID"):
        return None
    return claims


def create_session(account: dict[str, Any]) -> str:
    """Signed token for a signed-in staff member: id, email and expiry only."""
    claims = {
        "userID": str(account["userID"]),
        "email": _normalize_email(account.get("email")),
        "expiresAt": time.time() + SESSION_TTL_SECONDS,
    }
    encoded = _b64encode(json.dumps(claims, ensure_ascii=True, separators=(",", ":")).encode("utf-8"))
    return f"{encoded}.{_sign(encoded)}"


def get_session(token: str | None) -> dict[str, Any] | None:
    if not token:
        return None
    claims = _read_session_token(token)
    now = time.time()
    if not claims or now >= float(claims.get("expiresAt") or 0.0):
        return None

    with _LOCK:
        revoked = _load_revoked_tokens_unlocked()
        live = {digest: expires_at for digest, expires_at in revoked.items() if expires_at > now}
        if len(live) != len(revoked):
            _save_revoked_tokens_unlocked(live)
    if _token_digest(token) in live:
        return None
    return {"userID": claims["userID"], "email": claims.get("email")}


def remove_session(token: str | None) -> None:
    """Revokes a token until it would have expired anyway. Unsigned tokens are ignored."""
    claims = _read_session_token(token) if token else None
    if not claims:
        return
    expires_at = float(claims.get("expiresAt") or 0.0)
    if expires_at <= time.time():
        return
    with _LOCK:
        revoked = _load_revoked_tokens_unlocked()
        revoked[_token_digest(token)] = expires_at
        _save_revoked_tokens_unlocked(revoked)


class SessionAuth:
    """Auth handle handed to the rental engine for one request."""

    def __init__(self, session: Optional[dict[str, Any]]):
        self.session = session or {}

    def get_current_user_id(self) -> Optional[str]:
        user_id = self.session.get("userID")
        return str(user_id) if user_id else None
