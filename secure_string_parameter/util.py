from __future__ import annotations

import re

from aws_cdk import ArnFormat, Stack, Token
from constructs import Construct

_PARAMETER_NAME_RE = re.compile(r"^[/\w.-]+$")
_MAX_PARAMETER_NAME_LENGTH = 2048


def validate_parameter_name(parameter_name: str) -> None:
    if Token.is_unresolved(parameter_name):
        return
    if len(parameter_name) > _MAX_PARAMETER_NAME_LENGTH:
        raise ValueError(
            f"name too long: {len(parameter_name)} characters (max {_MAX_PARAMETER_NAME_LENGTH})"
        )
    if not _PARAMETER_NAME_RE.match(parameter_name):
        raise ValueError(
            f"name must only contain letters, numbers, and the following 4 symbols .-_/; got {parameter_name}"
        )


def arn_for_parameter_name(
    scope: Construct,
    parameter_name: str,
    *,
    simple_name: bool | None = None,
) -> str:
    """Build the ARN of an SSM parameter in the stack of ``scope``.

    A "simple" name carries no leading slash. Token names cannot be inspected,
    so their simplicity must be stated explicitly.
    """
    if Token.is_unresolved(parameter_name):
        if simple_name is None:
            raise ValueError(
                "simple_name must be explicitly specified when the parameter name is a token"
            )
        is_simple = simple_name
    else:
        concrete_simple = not parameter_name.startswith("/")
        if simple_name is not None and simple_name != concrete_simple:
            expected = "a simple name" if concrete_simple else "not a simple name"
            raise ValueError(
                f"parameter name {parameter_name!r} is {expected}, but simple_name was set to {simple_name}"
            )
        is_simple = concrete_simple

    stack = Stack.of(scope)
    if is_simple:
        return stack.format_arn(
            service="ssm",
            resource="parameter",
            arn_format=ArnFormat.SLASH_RESOURCE_NAME,
            resource_name=parameter_name,
        )
    # Path names already carry the separator.
    return stack.format_arn(
        service="ssm",
        resource=f"parameter{parameter_name}",
        arn_format=ArnFormat.NO_RESOURCE_NAME,
    )
