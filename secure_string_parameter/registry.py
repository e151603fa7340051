from __future__ import annotations

import weakref
from typing import Callable, TypeVar

from aws_cdk import Stack
from constructs import Construct

T = TypeVar("T")

_REGISTRY: "weakref.WeakKeyDictionary[Stack, dict[str, object]]" = weakref.WeakKeyDictionary()


def get_or_create(scope: Construct, construct_id: str, factory: Callable[[Stack], T]) -> T:
    """Return the construct registered under ``construct_id`` in the stack of ``scope``.

    The factory receives the stack and is called at most once per stack and id.
    """
    stack = Stack.of(scope)
    entries = _REGISTRY.setdefault(stack, {})
    existing = entries.get(construct_id)
    if existing is not None:
        return existing  # type: ignore[return-value]
    created = factory(stack)
    entries[construct_id] = created
    return created
