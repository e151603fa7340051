"""Operator CLI for SecureStringParameter values.

Produces the KMS ciphertext that is committed in place of a secret. The
command surface is implemented with Typer and Rich; command outputs stay
pipe-friendly (the bare value on stdout).
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
