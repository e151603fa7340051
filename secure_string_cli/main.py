from __future__ import annotations

import sys

import click
import typer

from . import __version__
from .cli_shared import (
    GlobalOpts,
    OpError,
    UsageError,
    _kms_client,
    _read_value,
    _require_str,
    _rich_error,
    decrypt_value,
    encrypt_value,
)

app = typer.Typer(
    name="secure-string-parameter",
    help="Encrypt values for SecureStringParameter and check committed ciphertexts.",
    no_args_is_help=True,
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"secure-string-parameter {__version__}")
        raise typer.Exit(code=0)


def _ctx_global(ctx: typer.Context) -> GlobalOpts:
    if isinstance(ctx.obj, dict) and isinstance(ctx.obj.get("g"), GlobalOpts):
        return ctx.obj["g"]
    return GlobalOpts()


@app.callback()
def app_callback(
    ctx: typer.Context,
    profile: str | None = typer.Option(None, "--profile", help="AWS profile (env: AWS_PROFILE)"),
    region: str | None = typer.Option(None, "--region", help="AWS region (env: AWS_REGION)"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True),
) -> None:
    del version
    ctx.obj = {
        "g": GlobalOpts(
            profile=(profile or "").strip() or None,
            region=(region or "").strip() or None,
        )
    }


@app.command("encrypt", help="Encrypt a value with KMS and print the base64 ciphertext.")
def encrypt(
    ctx: typer.Context,
    key_id: str = typer.Option("", "--key-id", help="KMS key id, key ARN, or alias name"),
    value: str | None = typer.Option(None, "--value", help="Plaintext value"),
    value_file: str | None = typer.Option(None, "--value-file", help="Read the plaintext from a file"),
) -> None:
    key_id = _require_str(key_id, "--key-id", hint="for example alias/my-key")
    plaintext = _read_value(value=value, value_file=value_file)
    kms = _kms_client(_ctx_global(ctx))
    typer.echo(encrypt_value(kms, key_id=key_id, plaintext=plaintext))


@app.command("decrypt", help="Decrypt a base64 ciphertext with KMS and print the plaintext.")
def decrypt(
    ctx: typer.Context,
    value: str | None = typer.Option(None, "--value", help="Base64 ciphertext"),
    value_file: str | None = typer.Option(None, "--value-file", help="Read the ciphertext from a file"),
    key_id: str = typer.Option("", "--key-id", help="Optional KMS key id, key ARN, or alias name"),
) -> None:
    ciphertext = _read_value(value=value, value_file=value_file)
    kms = _kms_client(_ctx_global(ctx))
    typer.echo(decrypt_value(kms, ciphertext=ciphertext, key_id=key_id.strip() or None))


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    try:
        result = app(args=argv, prog_name="secure-string-parameter", standalone_mode=False)
        if result is None:
            return 0
        return int(result)
    except typer.Exit as e:
        return int(e.exit_code)
    except click.ClickException as e:
        _rich_error(e.format_message())
        return int(e.exit_code)
    except UsageError as e:
        _rich_error(str(e))
        return 2
    except OpError as e:
        _rich_error(str(e))
        return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
