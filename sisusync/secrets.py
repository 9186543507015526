"""Load a secrets scope from ``secrets/<scope>.env[.enc]``.

Encrypted files are decrypted with SOPS; plain files are read with
python-dotenv. Values from the caller-supplied environment take
precedence, so cron hosts can inject credentials without a file.
"""

import subprocess
from collections.abc import Iterable, Mapping
from io import StringIO
from pathlib import Path

from dotenv import dotenv_values


def decrypt_dotenv(encrypted_path: str | Path) -> dict[str, str | None]:
    """Decrypt a SOPS-encrypted .env file.

    Raises:
        FileNotFoundError: If the encrypted file does not exist.
        subprocess.CalledProcessError: If SOPS decryption fails.
    """
    path = Path(encrypted_path)
    if not path.exists():
        raise FileNotFoundError(f"Encrypted secrets file not found: {path}")

    decrypted = subprocess.run(
        ["sops", "--decrypt", "--input-type", "dotenv", "--output-type", "dotenv", str(path)],
        capture_output=True,
        text=True,
        check=True,
    ).stdout
    return dict(dotenv_values(stream=StringIO(decrypted)))


def read_dotenv(dotenv_path: str | Path) -> dict[str, str | None]:
    """Read a plain .env file; a missing file is an empty mapping."""
    path = Path(dotenv_path)
    return dict(dotenv_values(path)) if path.exists() else {}


def load_scope(
    secrets_dir: Path,
    scope: str,
    *,
    use_sops: bool,
    environ: Mapping[str, str],
    env_keys: Iterable[str] = (),
) -> dict[str, str | None]:
    """Values for one scope, overlaid with ``environ``.

    A key from ``environ`` wins if the file defines it or it is listed in
    ``env_keys``; other environment variables are ignored.
    """
    if use_sops:
        values = decrypt_dotenv(secrets_dir / f"{scope}.env.enc")
    else:
        values = read_dotenv(secrets_dir / f"{scope}.env")
    for key in {*values, *env_keys}:
        if key in environ:
            values[key] = environ[key]
    return values
