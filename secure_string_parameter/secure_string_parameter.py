from __future__ import annotations

import uuid
from enum import Enum
from pathlib import Path
from typing import Any

import jsii
from aws_cdk import (
    CustomResource,
    Duration,
    ITaggable,
    RemovalPolicy,
    Resource,
    Stack,
    TagManager,
    TagType,
    aws_iam as iam,
    aws_kms as kms,
    aws_lambda as _lambda,
    aws_logs as logs,
    aws_ssm as ssm,
    custom_resources as cr,
)
from constructs import Construct

from .key_reference import KeyReference, key_reference
from .registry import get_or_create
from .util import arn_for_parameter_name, validate_parameter_name

RESOURCE_TYPE = "Custom::SecureStringParameter"
HANDLER_ID = "SecureStringParameterCustomResourceHandler"
PROVIDER_ID = "SecureStringParameterCustomResourceProvider"
LAMBDA_ASSET_DIR = str(Path(__file__).resolve().parent / "lambda")

HANDLER_SSM_ACTIONS = [
    "ssm:PutParameter",
    "ssm:DeleteParameter",
    "ssm:GetParameters",
    "ssm:ListTagsForResource",
    "ssm:AddTagsToResource",
    "ssm:RemoveTagsFromResource",
]

_TIER_VALUES = {
    ssm.ParameterTier.STANDARD: "Standard",
    ssm.ParameterTier.ADVANCED: "Advanced",
    ssm.ParameterTier.INTELLIGENT_TIERING: "Intelligent-Tiering",
}


class ValueType(str, Enum):
    """The type of the string value."""

    PLAINTEXT = "plaintext"
    """The value is in plain text and visible to anyone who can read the template."""

    ENCRYPTED = "encrypted"
    """The value is a base64 KMS ciphertext, decrypted by the handler before storing."""


def _create_handler(stack: Stack) -> _lambda.Function:
    return _lambda.Function(
        stack,
        HANDLER_ID,
        runtime=_lambda.Runtime.PYTHON_3_12,
        handler="secure_string_parameter_handler.handler",
        code=_lambda.Code.from_asset(LAMBDA_ASSET_DIR, exclude=["__pycache__", "*.pyc"]),
        timeout=Duration.seconds(30),
        initial_policy=[
            iam.PolicyStatement(
                effect=iam.Effect.ALLOW,
                # Must allow * to handle parameter name changes.
                resources=["*"],
                actions=HANDLER_SSM_ACTIONS,
            )
        ],
        log_group=logs.LogGroup(
            stack,
            f"{HANDLER_ID}LogGroup",
            retention=logs.RetentionDays.ONE_WEEK,
        ),
    )


def _tier_value(tier: ssm.ParameterTier | str | None) -> str | None:
    if tier is None:
        return None
    if isinstance(tier, ssm.ParameterTier):
        return _TIER_VALUES[tier]
    return str(tier)


@jsii.implements(ITaggable)
class SecureStringParameter(Resource):
    """
    Creates a new SecureString SSM parameter.

    With ``value_type=ValueType.ENCRYPTED`` the ``string_value`` is a KMS
    ciphertext that is safe to commit; the parameter is created with the
    decrypted value.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        string_value: str,
        value_type: ValueType | str,
        encryption_key: kms.IKey | KeyReference | None = None,
        parameter_name: str | None = None,
        simple_name: bool | None = None,
        allowed_pattern: str | None = None,
        description: str | None = None,
        tier: ssm.ParameterTier | str | None = None,
        data_type: ssm.ParameterDataType | None = None,
        type: ssm.ParameterType | None = None,
        removal_policy: RemovalPolicy | None = None,
    ) -> None:
        super().__init__(scope, construct_id)

        self.value_type = ValueType(value_type)
        if self.value_type is ValueType.ENCRYPTED and encryption_key is None:
            raise ValueError("encryption_key is required when value_type is 'encrypted'")
        if data_type is not None and data_type != ssm.ParameterDataType.TEXT:
            raise ValueError("data_type must be ParameterDataType.TEXT")
        if type is not None and type != ssm.ParameterType.SECURE_STRING:
            raise ValueError("type must be ParameterType.SECURE_STRING")

        self._tags = TagManager(TagType.MAP, RESOURCE_TYPE)
        # Tags added with Tags.of(scope).add() arrive through ITaggable; StackProps tags do not.
        for tag in Stack.of(self).tags.render_tags() or []:
            self._tags.set_tag(tag["Key"], tag["Value"])

        self.encryption_key = encryption_key
        self.string_value = string_value
        self.parameter_type = "SecureString"
        self.parameter_name = parameter_name or str(uuid.uuid4())
        validate_parameter_name(self.parameter_name)
        self.parameter_arn = arn_for_parameter_name(
            self, self.parameter_name, simple_name=simple_name
        )
        self._string_parameter: ssm.IStringParameter | None = None

        self._event_handler = get_or_create(self, HANDLER_ID, _create_handler)

        self._key_reference: KeyReference | None = None
        if encryption_key is not None:
            self._key_reference = key_reference(encryption_key)
            key = self._key_reference.resolve_key(self)
            self._event_handler.add_to_role_policy(
                iam.PolicyStatement(
                    effect=iam.Effect.ALLOW,
                    resources=[key.key_arn],
                    actions=["kms:Decrypt", "kms:Encrypt"],
                )
            )

        handler = self._event_handler
        self._provider = get_or_create(
            self,
            PROVIDER_ID,
            lambda stack: cr.Provider(
                stack,
                PROVIDER_ID,
                on_event_handler=handler,
                log_group=logs.LogGroup(
                    stack,
                    f"{PROVIDER_ID}LogGroup",
                    retention=logs.RetentionDays.ONE_WEEK,
                ),
            ),
        )

        properties: dict[str, Any] = {
            "allowedPattern": allowed_pattern,
            "description": description,
            "encryptionKey": self._key_reference.key_id if self._key_reference else None,
            "name": self.parameter_name,
            "tags": self._tags.rendered_tags,
            "tier": _tier_value(tier),
            "value": self.string_value,
            "valueType": self.value_type.value,
        }

        self.custom_resource = CustomResource(
            self,
            construct_id,
            service_token=self._provider.service_token,
            resource_type=RESOURCE_TYPE,
            removal_policy=removal_policy,
            properties={k: v for k, v in properties.items() if v is not None},
            pascal_case_properties=True,
        )

    @property
    def tags(self) -> TagManager:
        return self._tags

    @property
    def key_reference(self) -> KeyReference | None:
        return self._key_reference

    def grant_read(self, grantee: iam.IGrantable) -> iam.Grant:
        return self.as_string_parameter().grant_read(grantee)

    def grant_write(self, grantee: iam.IGrantable) -> iam.Grant:
        return self.as_string_parameter().grant_write(grantee)

    def as_string_parameter(self) -> ssm.IStringParameter:
        """Return this parameter as a native IStringParameter."""
        if self._string_parameter is None:
            self._string_parameter = ssm.StringParameter.from_secure_string_parameter_attributes(
                self,
                "StringParameter",
                parameter_name=self.parameter_name,
            )
        return self._string_parameter
