import base64
import binascii
import json
import os
import time
from datetime import datetime, timezone
from typing import Any

import boto3
from botocore.exceptions import ClientError

SCHEMA_VERSION = os.environ.get("SCHEMA_VERSION", "2026-10-18")
RESOURCE_TYPE = "Parameter"
VALUE_TYPE_ENCRYPTED = "encrypted"

_kms_client = None
_ssm_client = None


class SecureStringParameterError(Exception):
    pass


class UnknownRequestTypeError(SecureStringParameterError):
    pass


class DecryptError(SecureStringParameterError):
    pass


class InvalidPropertiesError(SecureStringParameterError):
    pass


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _aws_region() -> str | None:
    return os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION")


def _kms():
    global _kms_client
    if _kms_client is None:
        _kms_client = boto3.client("kms", region_name=_aws_region())
    return _kms_client


def _ssm():
    global _ssm_client
    if _ssm_client is None:
        _ssm_client = boto3.client("ssm", region_name=_aws_region())
    return _ssm_client


def _optional(props: dict[str, Any], key: str) -> str | None:
    val = props.get(key)
    if val is None:
        return None
    val = str(val)
    return val if val else None


def _decrypt(value: str, key_id: str | None) -> str:
    try:
        blob = base64.b64decode("".join(value.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecryptError("Value is not a base64 encoded ciphertext") from exc

    decrypt_kwargs: dict[str, Any] = {"CiphertextBlob": blob}
    # KMS infers the key from the blob when none is given, but the role still needs kms:Decrypt on it.
    if key_id:
        decrypt_kwargs["KeyId"] = key_id
    out = _kms().decrypt(**decrypt_kwargs)
    plaintext = out.get("Plaintext")
    if plaintext is None:
        raise DecryptError("Unable to decrypt")
    if isinstance(plaintext, bytes):
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptError("Decrypted value is not valid UTF-8") from exc
    return str(plaintext)


def _desired_tags(props: dict[str, Any]) -> dict[str, str]:
    tags = props.get("Tags")
    if tags is None:
        return {}
    if not isinstance(tags, dict):
        raise InvalidPropertiesError(f"Tags must be a map, got {type(tags).__name__}")
    return {str(k): str(v) for k, v in tags.items()}


def _update_tags(parameter_name: str, tags: dict[str, str]) -> tuple[list[str], list[str]]:
    out = _ssm().list_tags_for_resource(
        ResourceType=RESOURCE_TYPE,
        ResourceId=parameter_name,
    )
    removable: list[str] = []
    for tag in out.get("TagList") or []:
        key = tag.get("Key")
        if key and key not in tags:
            removable.append(key)

    if removable:
        _ssm().remove_tags_from_resource(
            ResourceType=RESOURCE_TYPE,
            ResourceId=parameter_name,
            TagKeys=removable,
        )
    if tags:
        _ssm().add_tags_to_resource(
            ResourceType=RESOURCE_TYPE,
            ResourceId=parameter_name,
            Tags=[{"Key": key, "Value": value} for key, value in tags.items()],
        )
    return removable, list(tags)


def _on_create_or_update(props: dict[str, Any], wide_event: dict[str, Any]) -> dict[str, Any]:
    name = str(props.get("Name") or "")
    value = str(props.get("Value") or "")
    value_type = str(props.get("ValueType") or "")
    encryption_key = _optional(props, "EncryptionKey")

    wide_event["parameter_name"] = name
    wide_event["value_type"] = value_type
    tags = _desired_tags(props)

    if value_type == VALUE_TYPE_ENCRYPTED:
        value = _decrypt(value, encryption_key)

    put_kwargs: dict[str, Any] = {
        "Name": name,
        "Value": value,
        "Type": "SecureString",
        "Overwrite": True,
    }
    for key in ("AllowedPattern", "Description", "Tier"):
        val = _optional(props, key)
        if val is not None:
            put_kwargs[key] = val
    if encryption_key:
        put_kwargs["KeyId"] = encryption_key

    _ssm().put_parameter(**put_kwargs)

    removed, added = _update_tags(name, tags)
    wide_event["tags_removed"] = removed
    wide_event["tags_added"] = added
    return {"PhysicalResourceId": name}


def _on_delete(event: dict[str, Any], props: dict[str, Any], wide_event: dict[str, Any]) -> dict[str, Any]:
    name = str(props.get("Name") or event.get("PhysicalResourceId") or "")
    wide_event["parameter_name"] = name
    try:
        _ssm().delete_parameter(Name=name)
    except ClientError as exc:
        # A failed Create rolls back with a Delete for a parameter that never existed.
        if exc.response.get("Error", {}).get("Code") != "ParameterNotFound":
            raise
        wide_event["already_deleted"] = True
    return {"PhysicalResourceId": name}


def handler(event: dict[str, Any], _context: Any) -> dict[str, Any]:
    start = time.time()
    request_type = str(event.get("RequestType") or "")
    props = event.get("ResourceProperties") or {}

    wide_event: dict[str, Any] = {
        "event": "secure_string_parameter",
        "schema_version": SCHEMA_VERSION,
        "ts": _now_iso(),
        "request_type": request_type,
        "request_id": event.get("RequestId", ""),
        "logical_resource_id": event.get("LogicalResourceId", ""),
    }

    try:
        if request_type in ("Create", "Update"):
            out = _on_create_or_update(props, wide_event)
        elif request_type == "Delete":
            out = _on_delete(event, props, wide_event)
        else:
            raise UnknownRequestTypeError(f"Unknown RequestType: {request_type}")
        wide_event["outcome"] = "success"
        return out
    except Exception as exc:
        wide_event["outcome"] = "error"
        wide_event["error"] = {"type": type(exc).__name__, "message": str(exc)}
        raise
    finally:
        wide_event["duration_ms"] = int((time.time() - start) * 1000)
        # Never log parameter values or ciphertexts.
        print(json.dumps(wide_event, separators=(",", ":"), sort_keys=True))
