"""Single source of truth for all configuration and secrets.

All modules import from here — never from os.environ directly.

Values come from secrets/internal.env (or the SOPS-encrypted
secrets/internal.env.enc when SISUSYNC_USE_SOPS=true); the process
environment overrides the file so cron hosts can inject credentials.
"""

import os
from pathlib import Path

from sisusync.secrets import load_scope

PROJECT_ROOT = Path(__file__).resolve().parent.parent

USE_SOPS = os.environ.get("SISUSYNC_USE_SOPS", "false").lower() == "true"


class ConfigError(Exception):
    """Raised by entry points when required settings are missing."""


def _split(value: str | None) -> list[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


_ENV_KEYS = [
    "SISU_BASE_URL",
    "SISU_AUTH_HEADER",
    "GOOGLE_CREDENTIALS_BASE64",
    "GOOGLE_SHARED_DRIVE_ID",
    "MARKER_NAME",
    "IDENTIFIER_MODE",
    "MARKER_ROOTS",
    "INACTIVE_STATUSES",
    "MAX_ANCESTOR_DEPTH",
    "RETRY_ATTEMPTS",
    "RETRY_DELAY_SECONDS",
    "MAX_CONCURRENT_FOLDERS",
    "RUN_TIMEOUT_SECONDS",
    "AUDIT_BACKEND",
    "AUDIT_LOG_DIR",
    "AUDIT_SPREADSHEET_NAME",
]

_internal = load_scope(
    PROJECT_ROOT / "secrets", "internal", use_sops=USE_SOPS, environ=os.environ, env_keys=_ENV_KEYS
)

# --- Transaction registry (SISU) ---
SISU_BASE_URL: str = _internal.get("SISU_BASE_URL") or ""
SISU_AUTH_HEADER: str = _internal.get("SISU_AUTH_HEADER") or ""

# --- Document store (Google Shared Drive) ---
GOOGLE_CREDENTIALS_BASE64: str = _internal.get("GOOGLE_CREDENTIALS_BASE64") or ""
GOOGLE_SHARED_DRIVE_ID: str = _internal.get("GOOGLE_SHARED_DRIVE_ID") or ""

# --- Marker documents ---
MARKER_NAME: str = _internal.get("MARKER_NAME") or "SISU_ID"
IDENTIFIER_MODE: str = _internal.get("IDENTIFIER_MODE") or "auto"
MARKER_ROOTS: list[str] = _split(_internal.get("MARKER_ROOTS"))

# --- Resolution and transfer tuning ---
INACTIVE_STATUSES: list[str] = _split(
    _internal.get("INACTIVE_STATUSES") or "closed,withdrawn,lost,expired,inactive,cancelled"
)
MAX_ANCESTOR_DEPTH: int = int(_internal.get("MAX_ANCESTOR_DEPTH") or "10")
RETRY_ATTEMPTS: int = int(_internal.get("RETRY_ATTEMPTS") or "3")
RETRY_DELAY_SECONDS: float = float(_internal.get("RETRY_DELAY_SECONDS") or "1.0")
MAX_CONCURRENT_FOLDERS: int = int(_internal.get("MAX_CONCURRENT_FOLDERS") or "1")
RUN_TIMEOUT_SECONDS: float = float(_internal.get("RUN_TIMEOUT_SECONDS") or "300")

# --- Audit log ---
AUDIT_BACKEND: str = _internal.get("AUDIT_BACKEND") or "jsonl"
AUDIT_LOG_DIR: str = _internal.get("AUDIT_LOG_DIR") or str(PROJECT_ROOT / "data" / "audit")
AUDIT_SPREADSHEET_NAME: str = _internal.get("AUDIT_SPREADSHEET_NAME") or "SISU_Upload_Errors"
