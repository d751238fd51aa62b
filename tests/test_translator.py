import json
import os
from unittest import mock

import pytest

from makura.config import Settings
from makura.encryption import EncryptionService
from makura.engine import MappingEngine
from makura.exceptions import (
    ConfigurationError,
    EncryptionError,
    ForwardingError,
    MappingError,
    TranslationError,
)
from makura.forwarding import HttpForwardingClient
from makura.loader import MappingLoader
from makura.models import EncryptionType, SourceMessage, TargetMessage, TranslationOptions
from makura.translator import Translator, TranslatorBuilder

JSON_ROUTE = """
routeId: payments-json
inboundFormat: JSON
mode: ACTIVE
endpoint: https://bank.example/in
auth:
  type: API_KEY
  key: route-secret
mappings:
  request:
    - from: source.amount
      to: Value/Amount
  response:
    - from: target:Status
      to: result.code
      transform: mapStatusToResponseCode(value)
"""

SOAP_ROUTE = """
inboundFormat: SOAP
mappings:
  request:
    - from: source.Req.Id
      to: Id
  response:
    - from: Status
      to: source.Reply.Status
"""


@pytest.fixture
def mappings(tmp_path):
    directory = tmp_path / "mappings"
    directory.mkdir()
    (directory / "payments-json.yaml").write_text(JSON_ROUTE)
    (directory / "vendor-soap.yaml").write_text(SOAP_ROUTE)
    return directory


@pytest.fixture
def keys(tmp_path):
    aes = tmp_path / "keys" / "aes"
    aes.mkdir(parents=True)
    (aes / "k1.key").write_bytes(os.urandom(32))
    return tmp_path / "keys"


@pytest.fixture
def translator(mappings):
    return Translator(MappingLoader(str(mappings)))


def test_translate_request(translator):
    target = translator.translate_request(
        SourceMessage('{"source":{"amount":"100.00"}}'), "payments-json"
    )
    assert target.content.endswith("<Document><Value><Amount>100.00</Amount></Value></Document>")


def test_translate_request_message_format_overrides_route(translator):
    target = translator.translate_request(
        SourceMessage("<Payment><amount>5.00</amount></Payment>", format="xml"), "payments-json"
    )
    assert "<Amount>5.00</Amount>" in target.content


def test_translate_response_uses_route_inbound_format(translator):
    reply = translator.translate_response(
        TargetMessage("<Document><Status>ACSC</Status></Document>"), "payments-json"
    )
    assert reply.format == "JSON"
    assert json.loads(reply.content) == {"result": {"code": "25"}}


def test_translate_response_as_xml_for_soap_routes(translator):
    reply = translator.translate_response(
        TargetMessage("<Document><Status>OK</Status></Document>"), "vendor-soap"
    )
    assert reply.format == "SOAP"
    assert reply.content.endswith("<Reply><Status>OK</Status></Reply>")


def test_unknown_route(translator):
    with pytest.raises(TranslationError) as excinfo:
        translator.translate_request(SourceMessage("{}"), "unknown")
    assert excinfo.value.route_id == "unknown"
    assert isinstance(excinfo.value.__cause__, ConfigurationError)


def test_malformed_message(translator):
    with pytest.raises(TranslationError) as excinfo:
        translator.translate_request(SourceMessage("{broken"), "payments-json")
    assert "payments-json" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, MappingError)


def test_unknown_message_format(translator):
    with pytest.raises(TranslationError, match="Unsupported format"):
        translator.translate_request(SourceMessage("{}", format="CSV"), "payments-json")


def test_translate_with_options_plain(translator):
    result = translator.translate_with_options(
        SourceMessage('{"amount": "1.00"}'), TranslationOptions(route_id="payments-json")
    )
    assert not result.forwarded
    assert result.forwarding_response is None
    assert "<Amount>1.00</Amount>" in result.target_message


def test_encryption_requires_service(translator):
    options = TranslationOptions(route_id="payments-json", encrypt=True, encryption_key_ref="k1")
    with pytest.raises(TranslationError, match="no encryption service"):
        translator.translate_with_options(SourceMessage('{"amount": "1"}'), options)


def test_forwarding_requires_client(translator):
    options = TranslationOptions(route_id="payments-json", forward=True)
    with pytest.raises(TranslationError, match="no forwarding client"):
        translator.translate_with_options(SourceMessage('{"amount": "1"}'), options)


def test_encrypt_and_forward(mappings, keys):
    forwarding = mock.Mock(spec=HttpForwardingClient)
    forwarding.forward.return_value = "ACCEPTED"
    translator = (
        TranslatorBuilder().with_mappings_path(str(mappings)).with_encryption(str(keys)).build()
    )
    translator.forwarding = forwarding

    options = TranslationOptions(
        route_id="payments-json", encrypt=True, encryption_key_ref="k1", forward=True
    )
    result = translator.translate_with_options(SourceMessage('{"amount": "9.99"}'), options)

    assert result.forwarded
    assert result.forwarding_response == "ACCEPTED"
    endpoint, message, api_key = forwarding.forward.call_args.args
    assert endpoint == "https://bank.example/in"
    assert api_key == "route-secret"
    assert message == result.target_message
    assert "<Amount>9.99</Amount>" in translator.encryption.decrypt_aes(message, "k1")


def test_forward_options_override_route(translator):
    translator.forwarding = mock.Mock(spec=HttpForwardingClient)
    translator.forwarding.forward.return_value = "OK"
    options = TranslationOptions(
        route_id="payments-json",
        forward=True,
        endpoint="https://other.example/in",
        forwarding_api_key="option-key",
    )
    translator.translate_with_options(SourceMessage('{"amount": "1"}'), options)
    endpoint, _, api_key = translator.forwarding.forward.call_args.args
    assert endpoint == "https://other.example/in"
    assert api_key == "option-key"


def test_forwarding_without_endpoint(translator):
    translator.forwarding = mock.Mock(spec=HttpForwardingClient)
    options = TranslationOptions(route_id="vendor-soap", forward=True)
    with pytest.raises(TranslationError, match="no endpoint"):
        translator.translate_with_options(
            SourceMessage("<Req><Id>1</Id></Req>", format="XML"), options
        )
    translator.forwarding.forward.assert_not_called()


def test_forwarding_failure_is_wrapped(translator):
    translator.forwarding = mock.Mock(spec=HttpForwardingClient)
    translator.forwarding.forward.side_effect = ForwardingError("HTTP 500", status_code=500)
    options = TranslationOptions(route_id="payments-json", forward=True)
    with pytest.raises(TranslationError) as excinfo:
        translator.translate_with_options(SourceMessage('{"amount": "1"}'), options)
    assert excinfo.value.__cause__.status_code == 500


def test_builder_requires_keys_path_for_encryption():
    with pytest.raises(ValueError):
        TranslatorBuilder().with_encryption().build()


def test_builder_collaborators(mappings, keys):
    translator = (
        Translator.builder()
        .with_mappings_path(str(mappings))
        .with_forwarding()
        .with_timeouts(1.0, 2.0)
        .build()
    )
    assert translator.encryption is None
    assert translator.forwarding.connect_timeout == 1.0
    assert translator.forwarding.read_timeout == 2.0
    assert translator.loader.base_path == str(mappings)


def test_builder_from_settings(mappings, keys):
    settings = Settings(mappings_path=str(mappings), keys_path=str(keys), connect_timeout=3.0)
    translator = TranslatorBuilder.from_settings(settings).with_forwarding().build()
    assert translator.encryption.keys_path == str(keys)
    assert translator.forwarding.connect_timeout == 3.0


def test_pgp_encryption_is_dispatched(translator):
    translator.encryption = mock.Mock(spec=EncryptionService)
    translator.encryption.encrypt_pgp.return_value = "UEdQ"
    options = TranslationOptions(
        route_id="payments-json",
        encrypt=True,
        encryption_type=EncryptionType.PGP,
        encryption_key_ref="bank",
    )
    result = translator.translate_with_options(SourceMessage('{"amount": "2.50"}'), options)

    assert result.target_message == "UEdQ"
    message, key_ref = translator.encryption.encrypt_pgp.call_args.args
    assert "<Amount>2.50</Amount>" in message
    assert key_ref == "bank"
    translator.encryption.encrypt_aes.assert_not_called()


def test_encryption_failure_is_wrapped(translator):
    translator.encryption = mock.Mock(spec=EncryptionService)
    translator.encryption.encrypt_pgp.side_effect = EncryptionError("no such key")
    options = TranslationOptions(
        route_id="payments-json",
        encrypt=True,
        encryption_type=EncryptionType.PGP,
        encryption_key_ref="gone",
    )
    with pytest.raises(TranslationError, match="Failed to encrypt") as excinfo:
        translator.translate_with_options(SourceMessage('{"amount": "1"}'), options)
    assert isinstance(excinfo.value.__cause__, EncryptionError)


def test_builder_with_engine(mappings):
    engine = mock.Mock(spec=MappingEngine)
    engine.transform_to_target.return_value = "<Document/>"
    translator = TranslatorBuilder().with_mappings_path(str(mappings)).with_engine(engine).build()

    target = translator.translate_request(SourceMessage('{"amount": "1"}'), "payments-json")
    assert translator.engine is engine
    assert target.content == "<Document/>"
    source, config = engine.transform_to_target.call_args.args
    assert source == '{"amount": "1"}'
    assert config.route_id == "payments-json"
