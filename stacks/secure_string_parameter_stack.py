import os

from aws_cdk import RemovalPolicy, Stack, aws_kms as kms
from constructs import Construct

from secure_string_parameter import SecureStringParameter, ValueType


class SecureStringParameterStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        data_retention_mode = os.getenv("DATA_RETENTION_MODE", "destroy").strip().lower()
        if data_retention_mode not in {"destroy", "retain"}:
            raise ValueError(
                "DATA_RETENTION_MODE must be 'destroy' or 'retain' (case-insensitive)"
            )
        removal_policy = (
            RemovalPolicy.DESTROY
            if data_retention_mode == "destroy"
            else RemovalPolicy.RETAIN
        )

        parameter_name = (os.getenv("PARAMETER_NAME") or "foo").strip()
        string_value = os.getenv("PARAMETER_VALUE") or "bar"
        value_type = ValueType((os.getenv("PARAMETER_VALUE_TYPE") or "plaintext").strip().lower())
        kms_alias = (os.getenv("PARAMETER_KMS_ALIAS") or "").strip()

        encryption_key = None
        if kms_alias:
            encryption_key = kms.Alias.from_alias_name(self, "ParameterKeyAlias", kms_alias)
        elif value_type is ValueType.ENCRYPTED:
            raise ValueError("PARAMETER_KMS_ALIAS is required when PARAMETER_VALUE_TYPE=encrypted")

        SecureStringParameter(
            self,
            "Parameter",
            parameter_name=parameter_name,
            string_value=string_value,
            value_type=value_type,
            encryption_key=encryption_key,
            removal_policy=removal_policy,
        )
