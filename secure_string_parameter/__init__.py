"""SecureString SSM parameters whose values may be committed KMS-encrypted."""

from .key_reference import AliasRef, KeyRef, KeyReference, key_reference
from .secure_string_parameter import (
    HANDLER_ID,
    PROVIDER_ID,
    RESOURCE_TYPE,
    SecureStringParameter,
    ValueType,
)

__all__ = [
    "__version__",
    "AliasRef",
    "HANDLER_ID",
    "KeyRef",
    "KeyReference",
    "PROVIDER_ID",
    "RESOURCE_TYPE",
    "SecureStringParameter",
    "ValueType",
    "key_reference",
]

__version__ = "0.1.0"
