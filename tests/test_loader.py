import json

import pytest

from makura.exceptions import ConfigurationError
from makura.loader import MappingLoader
from makura.models import FieldMapping, MessageFormat, NamespaceConfig, RouteMode

ROUTE_YAML = """
routeId: payments-in
inboundFormat: soap
outboundFormat: ISO_XML
mode: active
endpoint: https://bank.example/pacs
auth:
  type: API_KEY
  key: secret
namespace:
  uri: urn:iso:std:iso:20022:tech:xsd:pacs.008.001.08
  prefix: ""
  rootElementPrefix: ns
rootElementName: FIToFICstmrCdtTrf
mappings:
  request:
    - from: source.TSQuerySingleRequest.SessionID
      to: GrpHdr/MsgId
    - from: source.Amount
      to: CdtTrfTxInf/IntrBkSttlmAmt
      defaultValue: 0
  response:
    - from: target:Status
      to: source.TSQuerySingleResponse.Code
      transform: mapStatusToResponseCode(value)
"""


def test_load_yaml_route(tmp_path):
    (tmp_path / "payments-in.yaml").write_text(ROUTE_YAML)
    config = MappingLoader(str(tmp_path)).load("payments-in")

    assert config.route_id == "payments-in"
    assert config.inbound_format is MessageFormat.SOAP
    assert config.outbound_format == "ISO_XML"
    assert config.mode is RouteMode.ACTIVE
    assert config.endpoint == "https://bank.example/pacs"
    assert config.auth.key == "secret"
    assert config.namespace == NamespaceConfig(
        uri="urn:iso:std:iso:20022:tech:xsd:pacs.008.001.08", prefix="", root_element_prefix="ns"
    )
    assert config.root_element_name == "FIToFICstmrCdtTrf"
    assert config.request[0] == FieldMapping(
        "source.TSQuerySingleRequest.SessionID", "GrpHdr/MsgId"
    )
    assert config.request[1].default_value == "0"
    assert config.response[0].transform == "mapStatusToResponseCode(value)"


def test_load_minimal_route_uses_defaults(tmp_path):
    (tmp_path / "minimal.yml").write_text("mappings:\n  request:\n    - {from: a, to: A}\n")
    config = MappingLoader(str(tmp_path)).load("minimal")

    assert config.inbound_format is MessageFormat.JSON
    assert config.mode is RouteMode.PASSIVE
    assert config.namespace is None
    assert config.root_element_name == "Document"
    assert config.response == ()


def test_load_json_route(tmp_path):
    document = {
        "routeId": "json-route",
        "inboundFormat": "JSON",
        "mappings": {"request": [{"from": "source.amount", "to": "Value/Amount"}]},
    }
    (tmp_path / "json-route.json").write_text(json.dumps(document))
    config = MappingLoader(str(tmp_path)).load("json-route")
    assert config.request == (FieldMapping("source.amount", "Value/Amount"),)


def test_requested_route_id_wins(tmp_path):
    (tmp_path / "alias.yaml").write_text("routeId: original\n")
    assert MappingLoader(str(tmp_path)).load("alias").route_id == "alias"


def test_missing_route(tmp_path):
    with pytest.raises(ConfigurationError, match="Mapping file not found for routeId nope") as excinfo:
        MappingLoader(str(tmp_path)).load("nope")
    assert excinfo.value.route_id == "nope"
    assert "nope.yaml" in str(excinfo.value)


@pytest.mark.parametrize(
    "content",
    [
        "mappings: [unclosed\n",
        "- just\n- a list\n",
        "inboundFormat: CSV\n",
        "mappings:\n  request: not-a-list\n",
        "namespace:\n  prefix: ns\n",
    ],
)
def test_invalid_route_documents(tmp_path, content):
    (tmp_path / "bad.yaml").write_text(content)
    with pytest.raises(ConfigurationError):
        MappingLoader(str(tmp_path)).load("bad")


def test_invalid_json_document(tmp_path):
    (tmp_path / "bad.json").write_text("{not json")
    with pytest.raises(ConfigurationError):
        MappingLoader(str(tmp_path)).load("bad")


@pytest.mark.parametrize("route_id", ["", "../etc/passwd", "a/b"])
def test_route_id_must_be_a_plain_name(tmp_path, route_id):
    with pytest.raises(ConfigurationError):
        MappingLoader(str(tmp_path)).load(route_id)


def test_file_changes_are_picked_up(tmp_path):
    path = tmp_path / "live.yaml"
    loader = MappingLoader(str(tmp_path))
    path.write_text("rootElementName: First\n")
    assert loader.load("live").root_element_name == "First"
    path.write_text("rootElementName: Second\n")
    assert loader.load("live").root_element_name == "Second"
