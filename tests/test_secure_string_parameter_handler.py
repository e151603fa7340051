import base64
import importlib
import json
import sys
from pathlib import Path

import pytest
from botocore.exceptions import ClientError

LAMBDA_DIR = Path(__file__).resolve().parents[1] / "secure_string_parameter" / "lambda"


def _load_handler(monkeypatch):
    monkeypatch.setenv("AWS_REGION", "us-east-1")
    monkeypatch.setenv("SCHEMA_VERSION", "2026-10-18")
    if str(LAMBDA_DIR) not in sys.path:
        sys.path.insert(0, str(LAMBDA_DIR))
    import secure_string_parameter_handler as module

    return importlib.reload(module)


class FakeKms:
    def __init__(self, plaintext: bytes | None = b"decrypted"):
        self.plaintext = plaintext
        self.calls = []

    def decrypt(self, **kwargs):
        self.calls.append(kwargs)
        if self.plaintext is None:
            return {"KeyId": "k"}
        return {"KeyId": "k", "Plaintext": self.plaintext}


class FakeSsm:
    def __init__(self, remote_tags: dict[str, str] | None = None, delete_error: str | None = None):
        self.remote_tags = dict(remote_tags or {})
        self.delete_error = delete_error
        self.calls: list[tuple[str, dict]] = []

    def _names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def _call(self, name: str) -> dict:
        for call_name, kwargs in self.calls:
            if call_name == name:
                return kwargs
        raise AssertionError(f"{name} not called")

    def put_parameter(self, **kwargs):
        self.calls.append(("put_parameter", kwargs))
        return {"Version": 1, "Tier": "Standard"}

    def delete_parameter(self, **kwargs):
        self.calls.append(("delete_parameter", kwargs))
        if self.delete_error:
            raise ClientError(
                {"Error": {"Code": self.delete_error, "Message": "nope"}},
                "DeleteParameter",
            )
        return {}

    def list_tags_for_resource(self, **kwargs):
        self.calls.append(("list_tags_for_resource", kwargs))
        return {"TagList": [{"Key": k, "Value": v} for k, v in self.remote_tags.items()]}

    def remove_tags_from_resource(self, **kwargs):
        self.calls.append(("remove_tags_from_resource", kwargs))
        return {}

    def add_tags_to_resource(self, **kwargs):
        self.calls.append(("add_tags_to_resource", kwargs))
        return {}


def _event(request_type: str, **props) -> dict:
    resource_properties = {
        "ServiceToken": "arn:aws:lambda:us-east-1:123456789012:function:provider",
        "Name": "test",
        "Value": "value",
        "ValueType": "plaintext",
    }
    resource_properties.update(props)
    return {
        "RequestType": request_type,
        "RequestId": "req-1",
        "LogicalResourceId": "Parameter",
        "ResourceProperties": resource_properties,
    }


def _install(module, kms=None, ssm=None):
    kms = kms or FakeKms()
    ssm = ssm or FakeSsm()
    module._kms_client = kms
    module._ssm_client = ssm
    return kms, ssm


@pytest.mark.parametrize("request_type", ["Create", "Update"])
def test_plaintext_value_is_stored_unchanged(monkeypatch, request_type):
    module = _load_handler(monkeypatch)
    kms, ssm = _install(module)

    out = module.handler(_event(request_type, Value="hunter2"), None)

    assert out == {"PhysicalResourceId": "test"}
    assert kms.calls == []
    put = ssm._call("put_parameter")
    assert put == {
        "Name": "test",
        "Value": "hunter2",
        "Type": "SecureString",
        "Overwrite": True,
    }


def test_encrypted_value_is_decrypted_before_put(monkeypatch):
    module = _load_handler(monkeypatch)
    kms, ssm = _install(module, kms=FakeKms(plaintext=b"s3cret"))
    ciphertext = base64.b64encode(b"ciphertext-blob").decode("ascii")

    module.handler(
        _event("Create", Value=ciphertext, ValueType="encrypted", EncryptionKey="alias/custom"),
        None,
    )

    assert kms.calls == [{"CiphertextBlob": b"ciphertext-blob", "KeyId": "alias/custom"}]
    put = ssm._call("put_parameter")
    assert put["Value"] == "s3cret"
    assert put["KeyId"] == "alias/custom"


def test_decrypt_without_key_lets_kms_infer_it(monkeypatch):
    module = _load_handler(monkeypatch)
    kms, _ssm = _install(module)
    ciphertext = base64.b64encode(b"blob").decode("ascii")

    module.handler(_event("Update", Value=ciphertext, ValueType="encrypted"), None)

    assert kms.calls == [{"CiphertextBlob": b"blob"}]


def test_missing_plaintext_fails_before_put(monkeypatch):
    module = _load_handler(monkeypatch)
    _kms, ssm = _install(module, kms=FakeKms(plaintext=None))
    ciphertext = base64.b64encode(b"blob").decode("ascii")

    with pytest.raises(module.DecryptError, match="Unable to decrypt"):
        module.handler(_event("Create", Value=ciphertext, ValueType="encrypted"), None)

    assert ssm.calls == []


def test_non_utf8_plaintext_fails_before_put(monkeypatch):
    module = _load_handler(monkeypatch)
    _kms, ssm = _install(module, kms=FakeKms(plaintext=b"\xff\xfe"))
    ciphertext = base64.b64encode(b"blob").decode("ascii")

    with pytest.raises(module.DecryptError, match="UTF-8"):
        module.handler(_event("Create", Value=ciphertext, ValueType="encrypted"), None)

    assert ssm.calls == []


def test_non_base64_ciphertext_fails_before_kms(monkeypatch):
    module = _load_handler(monkeypatch)
    kms, ssm = _install(module)

    with pytest.raises(module.DecryptError):
        module.handler(_event("Create", Value="not base64!", ValueType="encrypted"), None)

    assert kms.calls == []
    assert ssm.calls == []


def test_optional_properties_pass_through(monkeypatch):
    module = _load_handler(monkeypatch)
    _kms, ssm = _install(module)

    module.handler(
        _event(
            "Create",
            AllowedPattern="^[a-z]+$",
            Description="db password",
            Tier="Advanced",
            EncryptionKey="1234abcd-12ab-34cd-56ef-1234567890ab",
        ),
        None,
    )

    put = ssm._call("put_parameter")
    assert put["AllowedPattern"] == "^[a-z]+$"
    assert put["Description"] == "db password"
    assert put["Tier"] == "Advanced"
    assert put["KeyId"] == "1234abcd-12ab-34cd-56ef-1234567890ab"


def test_tags_are_reconciled_after_put(monkeypatch):
    module = _load_handler(monkeypatch)
    _kms, ssm = _install(module, ssm=FakeSsm(remote_tags={"a": "1", "b": "2"}))

    module.handler(_event("Update", Tags={"b": "2", "c": "3"}), None)

    assert ssm._names() == [
        "put_parameter",
        "list_tags_for_resource",
        "remove_tags_from_resource",
        "add_tags_to_resource",
    ]
    assert ssm._call("list_tags_for_resource") == {"ResourceType": "Parameter", "ResourceId": "test"}
    assert ssm._call("remove_tags_from_resource") == {
        "ResourceType": "Parameter",
        "ResourceId": "test",
        "TagKeys": ["a"],
    }
    assert ssm._call("add_tags_to_resource") == {
        "ResourceType": "Parameter",
        "ResourceId": "test",
        "Tags": [{"Key": "b", "Value": "2"}, {"Key": "c", "Value": "3"}],
    }


def test_absent_tags_remove_all_remote_tags_and_skip_add(monkeypatch):
    module = _load_handler(monkeypatch)
    _kms, ssm = _install(module, ssm=FakeSsm(remote_tags={"a": "1", "b": "2"}))

    module.handler(_event("Update"), None)

    assert ssm._call("remove_tags_from_resource")["TagKeys"] == ["a", "b"]
    assert "add_tags_to_resource" not in ssm._names()


def test_no_tag_calls_when_nothing_to_change(monkeypatch):
    module = _load_handler(monkeypatch)
    _kms, ssm = _install(module)

    module.handler(_event("Create", Tags={}), None)

    assert ssm._names() == ["put_parameter", "list_tags_for_resource"]


def test_malformed_tags_fail_before_any_ssm_call(monkeypatch):
    module = _load_handler(monkeypatch)
    _kms, ssm = _install(module, ssm=FakeSsm(remote_tags={"a": "1"}))

    with pytest.raises(module.InvalidPropertiesError, match="Tags must be a map"):
        module.handler(_event("Update", Tags=[{"Key": "a", "Value": "1"}]), None)

    assert ssm.calls == []


def test_delete_only_deletes_parameter(monkeypatch):
    module = _load_handler(monkeypatch)
    kms, ssm = _install(module)

    out = module.handler(_event("Delete", Tags={"a": "1"}, ValueType="encrypted"), None)

    assert out == {"PhysicalResourceId": "test"}
    assert ssm.calls == [("delete_parameter", {"Name": "test"})]
    assert kms.calls == []


def test_delete_of_missing_parameter_succeeds(monkeypatch):
    module = _load_handler(monkeypatch)
    _kms, ssm = _install(module, ssm=FakeSsm(delete_error="ParameterNotFound"))

    out = module.handler(_event("Delete"), None)

    assert out == {"PhysicalResourceId": "test"}


def test_delete_propagates_other_errors(monkeypatch):
    module = _load_handler(monkeypatch)
    _install(module, ssm=FakeSsm(delete_error="AccessDeniedException"))

    with pytest.raises(ClientError):
        module.handler(_event("Delete"), None)


def test_unknown_request_type_is_fatal(monkeypatch):
    module = _load_handler(monkeypatch)
    kms, ssm = _install(module)

    with pytest.raises(module.UnknownRequestTypeError, match="Unknown RequestType: Replace"):
        module.handler(_event("Replace"), None)

    assert isinstance(module.UnknownRequestTypeError("x"), module.SecureStringParameterError)
    assert kms.calls == []
    assert ssm.calls == []


def test_wide_event_never_contains_value(monkeypatch, capsys):
    module = _load_handler(monkeypatch)
    _install(module, kms=FakeKms(plaintext=b"top-secret-plaintext"))
    ciphertext = base64.b64encode(b"ciphertext-blob").decode("ascii")

    module.handler(_event("Create", Value=ciphertext, ValueType="encrypted"), None)

    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 1
    logged = json.loads(lines[0])
    assert logged["event"] == "secure_string_parameter"
    assert logged["outcome"] == "success"
    assert logged["parameter_name"] == "test"
    assert logged["request_type"] == "Create"
    assert "top-secret-plaintext" not in lines[0]
    assert ciphertext not in lines[0]


def test_wide_event_records_errors(monkeypatch, capsys):
    module = _load_handler(monkeypatch)
    _install(module)

    with pytest.raises(module.UnknownRequestTypeError):
        module.handler(_event("Bogus"), None)

    logged = json.loads(capsys.readouterr().out.strip())
    assert logged["outcome"] == "error"
    assert logged["error"]["type"] == "UnknownRequestTypeError"


def test_clients_are_created_once(monkeypatch):
    module = _load_handler(monkeypatch)
    created = []

    def fake_client(service, region_name=None):
        created.append((service, region_name))
        return object()

    monkeypatch.setattr(module.boto3, "client", fake_client)

    first = module._ssm()
    assert module._ssm() is first
    module._kms()
    assert created == [("ssm", "us-east-1"), ("kms", "us-east-1")]
