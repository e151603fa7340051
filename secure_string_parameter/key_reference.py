from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from aws_cdk import aws_kms as kms
from constructs import Construct


@dataclass(frozen=True)
class KeyRef:
    """A KMS key referenced directly."""

    key: kms.IKey

    @property
    def key_id(self) -> str:
        return self.key.key_id

    def resolve_key(self, scope: Construct) -> kms.IKey:
        del scope
        return self.key


@dataclass(frozen=True)
class AliasRef:
    """A KMS alias; ``target_key`` is unknown for aliases imported by name."""

    alias: kms.IAlias
    target_key: kms.IKey | None = None

    @property
    def key_id(self) -> str:
        return self.alias.alias_name

    def resolve_key(self, scope: Construct) -> kms.IKey:
        if self.target_key is not None:
            return self.target_key
        return kms.Key.from_lookup(scope, "key", alias_name=self.alias.alias_name)


KeyReference = Union[KeyRef, AliasRef]


def key_reference(key: kms.IKey | KeyReference) -> KeyReference:
    """Classify ``key`` once so callers never probe its shape again."""
    if isinstance(key, (KeyRef, AliasRef)):
        return key
    if isinstance(key, kms.Alias):
        return AliasRef(alias=key, target_key=key.alias_target_key)
    # Imported aliases (Alias.from_alias_name) are proxies exposing alias_name.
    alias_name = getattr(key, "alias_name", None)
    if isinstance(alias_name, str):
        return AliasRef(alias=key)  # type: ignore[arg-type]
    return KeyRef(key=key)
