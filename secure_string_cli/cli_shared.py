from __future__ import annotations

import base64
import os
import sys
from dataclasses import dataclass
from typing import Any

import boto3
from rich.console import Console


class SecureStringCliError(Exception):
    pass


class UsageError(SecureStringCliError):
    pass


class OpError(SecureStringCliError):
    pass


_ERROR_CONSOLE = Console(stderr=True)


def _rich_error(msg: str) -> None:
    _ERROR_CONSOLE.print(f"[bold red]error:[/bold red] {msg}")


@dataclass(frozen=True)
class GlobalOpts:
    profile: str | None = None
    region: str | None = None


def _env_or_none(*names: str) -> str | None:
    for n in names:
        v = (os.environ.get(n) or "").strip()
        if v:
            return v
    return None


def _require_str(val: str | None, name: str, *, hint: str) -> str:
    v = (val or "").strip()
    if not v:
        raise UsageError(f"missing {name} ({hint})")
    return v


def _session(g: GlobalOpts) -> Any:
    profile = g.profile or _env_or_none("AWS_PROFILE")
    region = g.region or _env_or_none("AWS_REGION", "AWS_DEFAULT_REGION")
    return boto3.session.Session(profile_name=profile, region_name=region)


def _kms_client(g: GlobalOpts) -> Any:
    return _session(g).client("kms")


def _read_value(*, value: str | None, value_file: str | None) -> str:
    if value is not None and value_file:
        raise UsageError("provide at most one of --value or --value-file")
    if value is not None:
        return value
    if value_file:
        try:
            with open(value_file, "r", encoding="utf-8") as f:
                return f.read().rstrip("\n")
        except OSError as e:
            raise UsageError(f"failed to read --value-file: {e}") from e
    if sys.stdin is None or sys.stdin.isatty():
        raise UsageError("provide --value, --value-file, or pipe the value on stdin")
    return sys.stdin.read().rstrip("\n")


def encrypt_value(kms: Any, *, key_id: str, plaintext: str) -> str:
    if not plaintext:
        raise UsageError("refusing to encrypt an empty value")
    try:
        out = kms.encrypt(KeyId=key_id, Plaintext=plaintext.encode("utf-8"))
    except Exception as e:
        raise OpError(f"kms encrypt failed for key {key_id!r}: {e}") from e
    blob = out.get("CiphertextBlob")
    if not blob:
        raise OpError("kms encrypt returned no ciphertext")
    return base64.b64encode(blob).decode("ascii")


def decrypt_value(kms: Any, *, ciphertext: str, key_id: str | None = None) -> str:
    try:
        blob = base64.b64decode("".join(ciphertext.split()), validate=True)
    except ValueError as e:
        raise UsageError(f"value is not base64: {e}") from e
    kwargs: dict[str, Any] = {"CiphertextBlob": blob}
    if key_id:
        kwargs["KeyId"] = key_id
    try:
        out = kms.decrypt(**kwargs)
    except Exception as e:
        raise OpError(f"kms decrypt failed: {e}") from e
    plaintext = out.get("Plaintext")
    if plaintext is None:
        raise OpError("Unable to decrypt")
    return plaintext.decode("utf-8")
