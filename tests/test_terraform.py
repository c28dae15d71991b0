import json

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from synthesizer.data_and_types import DuplicatePolicy, ResourceIdentity, TerraformDocument
from synthesizer.terraform import DocumentSynthesizer
from typesys.errors import DuplicateResourceError
from typesys.schema import ArrayMode, Attribute, Schema
from typesys.type_system import default_registry
from typesys.validator import SchemaValidator

TYPES = default_registry()

RULE = Schema("rule", attributes=(
    Attribute("from_port", "Port", required=True),
    Attribute("to_port", "Port", required=True),
    Attribute("cidr_blocks", TYPES.array("CidrBlock")),
    Attribute("self_ref", "bool", emit_as="self"),
))

TAG = Schema("tag", attributes=(
    Attribute("key", "string", required=True),
    Attribute("value", "string", required=True),
    Attribute("propagate_at_launch", "bool", default=True),
))

SCHEMA = Schema("widget", attributes=(
    Attribute("name", "string", required=True),
    Attribute("description", "string"),
    Attribute("enabled", "bool", default=True, always_emit=True),
    Attribute("public", "bool", default=False),
    Attribute("zones", TYPES.array("string")),
    Attribute("ingress", TYPES.array(TYPES.nested(RULE))),
    Attribute("tag", TYPES.array(TYPES.nested(TAG)), array_mode=ArrayMode.BLOCKS),
    Attribute("labels", "AwsTags", default=dict),
    Attribute("pools", TYPES.map("string", TYPES.nested(TAG))),
))


def _record(raw):
    return SchemaValidator(TYPES).validate(SCHEMA, raw).raise_for_errors("widget")


@pytest.fixture
def synthesizer():
    return DocumentSynthesizer(TYPES)


def test_unset_attributes_are_omitted(synthesizer):
    body = synthesizer.render(SCHEMA, _record({"name": "w", "description": "", "zones": []}))

    assert body == {"name": "w", "enabled": True, "public": False}


def test_always_emit_keeps_false_and_empty(synthesizer):
    schema = Schema("flags", attributes=(
        Attribute("enabled", "bool", always_emit=True),
        Attribute("notes", "string", always_emit=True),
    ))
    record = SchemaValidator(TYPES).validate(schema, {"enabled": False, "notes": ""}).record

    assert synthesizer.render(schema, record) == {"enabled": False, "notes": ""}


def test_list_mode_nested_elements_keep_their_values(synthesizer):
    record = _record({"name": "w", "ingress": [{"from_port": 80, "to_port": 80, "self_ref": False}]})

    body = synthesizer.render(SCHEMA, record)

    assert body["ingress"] == [{"from_port": 80, "to_port": 80, "self_ref": False}]


def test_blocks_mode_renders_each_block(synthesizer):
    record = _record({"name": "w", "tag": [{"key": "env", "value": "prod"}, {"key": "team", "value": "ops"}]})

    body = synthesizer.render(SCHEMA, record)

    assert body["tag"] == [
        {"key": "env", "value": "prod", "propagate_at_launch": True},
        {"key": "team", "value": "ops", "propagate_at_launch": True},
    ]


def test_emit_as_renames_the_output_key(synthesizer):
    schema = Schema("rule_block", attributes=(Attribute("self_ref", "bool", emit_as="self"),))
    record = SchemaValidator(TYPES).validate(schema, {"self_ref": True}).record

    assert synthesizer.render(schema, record) == {"self": True}


def test_free_form_and_nested_maps(synthesizer):
    record = _record({
        "name": "w",
        "labels": {"env": "prod"},
        "pools": {"blue": {"key": "k", "value": "v"}},
    })

    body = synthesizer.render(SCHEMA, record)

    assert body["labels"] == {"env": "prod"}
    assert body["pools"] == {"blue": {"key": "k", "value": "v", "propagate_at_launch": True}}
    assert isinstance(body["labels"], dict)


def test_synthesize_requires_a_validated_record(synthesizer):
    with pytest.raises(TypeError):
        synthesizer.synthesize(TerraformDocument(), "widget", "w", {"name": "w"})


def test_synthesize_uses_custom_render_function(synthesizer):
    document = TerraformDocument()

    def render(synth, record):
        body = synth.render(record.schema, record)
        body["name"] = body["name"].upper()
        return body

    synthesizer.synthesize(document, "widget", "w", _record({"name": "w"}), synthesize_fn=render)

    assert document.get_resource(ResourceIdentity("widget", "w"))["name"] == "W"


def test_duplicate_error_policy(synthesizer):
    document = TerraformDocument()
    synthesizer.synthesize(document, "widget", "w", _record({"name": "a"}))

    with pytest.raises(DuplicateResourceError, match="widget.w"):
        synthesizer.synthesize(document, "widget", "w", _record({"name": "a"}))


def test_duplicate_replace_policy_keeps_last(synthesizer):
    document = TerraformDocument()
    synthesizer.synthesize(document, "widget", "w", _record({"name": "a"}), DuplicatePolicy.REPLACE)
    synthesizer.synthesize(document, "widget", "w", _record({"name": "b"}), DuplicatePolicy.REPLACE)

    assert document.resource_count == 1
    assert document.get_resource(ResourceIdentity("widget", "w"))["name"] == "b"


def test_duplicate_ignore_identical_policy(synthesizer):
    document = TerraformDocument()
    policy = DuplicatePolicy.IGNORE_IDENTICAL
    synthesizer.synthesize(document, "widget", "w", _record({"name": "a"}), policy)
    synthesizer.synthesize(document, "widget", "w", _record({"name": "a"}), policy)

    assert document.resource_count == 1
    with pytest.raises(DuplicateResourceError):
        synthesizer.synthesize(document, "widget", "w", _record({"name": "b"}), policy)


def test_duplicate_policy_parse():
    assert DuplicatePolicy.parse("REPLACE") == DuplicatePolicy.REPLACE
    assert DuplicatePolicy.parse(DuplicatePolicy.ERROR) == DuplicatePolicy.ERROR
    with pytest.raises(ValueError, match="ignore_identical"):
        DuplicatePolicy.parse("merge")


def test_document_sections():
    document = TerraformDocument()
    assert document.to_dict() == {"resource": {}}

    document.add_resource(ResourceIdentity("aws_vpc", "main"), {"cidr_block": "10.0.0.0/16"})
    document.add_output("vpc_id", "${aws_vpc.main.id}", description="VPC id")
    document.backend = {"s3": {"bucket": "state"}}

    assert list(document.to_dict()) == ["terraform", "resource", "output"]
    assert document.to_dict()["terraform"] == {"backend": {"s3": {"bucket": "state"}}}
    assert document.to_dict()["output"]["vpc_id"] == {"value": "${aws_vpc.main.id}", "description": "VPC id"}
    assert json.loads(document.to_json()) == document.to_dict()


def test_document_stores_a_copy_of_the_body():
    document = TerraformDocument()
    body = {"name": "a"}
    document.add_resource(ResourceIdentity("widget", "w"), body)
    body["name"] = "changed"

    assert document.get_resource(ResourceIdentity("widget", "w")) == {"name": "a"}


@settings(max_examples=100, deadline=None)
@given(
    name=st.text(alphabet="abcdefghij-", min_size=1, max_size=12),
    zones=st.lists(st.sampled_from(["a", "b", "c"]), max_size=3),
    labels=st.dictionaries(st.sampled_from(["env", "team", "app"]), st.text(max_size=5), max_size=3),
    public=st.booleans(),
)
def test_identical_input_yields_identical_bytes(name, zones, labels, public):
    raw = {"name": name, "zones": zones, "labels": labels, "public": public}

    def run():
        document = TerraformDocument()
        DocumentSynthesizer(TYPES).synthesize(document, "widget", "w", _record(raw))
        return document.to_json()

    assert run() == run()
