import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from typesys import constraints as c
from typesys.errors import SchemaDefinitionError, ValidationFailed
from typesys.schema import Attribute, Schema, at_least_one_of, mutually_exclusive, ordered, pairs_with, within_range
from typesys.type_system import TypeRegistry
from typesys.validator import SchemaValidator, ValidatedRecord


def _hook_schema(types: TypeRegistry) -> Schema:
    return Schema("hook", attributes=(
        Attribute("name", "string", required=True),
        Attribute("autoscaling_group_name", "string", required=True),
        Attribute("heartbeat_timeout", types.constrain("integer", c.between(30, 7200)), default=300),
        Attribute("default_result", types.enum("CONTINUE", "ABANDON"), default="ABANDON"),
    ))


def _group_schema() -> Schema:
    return Schema(
        "group",
        attributes=(
            Attribute("min_size", "integer", required=True),
            Attribute("max_size", "integer", required=True),
            Attribute("desired_capacity", "integer"),
        ),
        rules=(
            ordered("min_size", "max_size"),
            within_range("desired_capacity", "min_size", "max_size"),
        ),
    )


def test_defaults_are_applied(types, validator):
    result = validator.validate(_hook_schema(types), {"name": "drain", "autoscaling_group_name": "web"})

    assert result.ok
    assert result.record["heartbeat_timeout"] == 300
    assert result.record["default_result"] == "ABANDON"


def test_none_counts_as_absent(types, validator):
    result = validator.validate(_hook_schema(types), {
        "name": "drain", "autoscaling_group_name": "web", "heartbeat_timeout": None,
    })

    assert result.record["heartbeat_timeout"] == 300


@pytest.mark.parametrize("timeout, ok", [(29, False), (30, True), (7200, True), (7201, False)])
def test_constraint_boundaries(types, validator, timeout, ok):
    result = validator.validate(_hook_schema(types), {
        "name": "drain", "autoscaling_group_name": "web", "heartbeat_timeout": timeout,
    })

    assert result.ok is ok
    if not ok:
        assert result.errors[0].path == "heartbeat_timeout"


def test_all_field_errors_are_collected(types, validator):
    result = validator.validate(_hook_schema(types), {"heartbeat_timeout": "soon", "extra": 1})

    assert not result.ok
    assert result.record is None
    by_path = {error.path: error for error in result.errors}
    assert set(by_path) == {"extra", "name", "autoscaling_group_name", "heartbeat_timeout"}
    assert by_path["name"].kind == "missing"
    assert by_path["name"].message == "missing required attribute"
    assert by_path["extra"].kind == "unknown"
    assert by_path["heartbeat_timeout"].kind == "type"


@settings(max_examples=50, deadline=None)
@given(st.sets(st.sampled_from(["name", "autoscaling_group_name"]), min_size=1))
def test_missing_required_attributes_are_always_reported(dropped):
    types = TypeRegistry()
    raw = {"name": "drain", "autoscaling_group_name": "web"}
    for name in dropped:
        del raw[name]

    result = SchemaValidator(types).validate(_hook_schema(types), raw)

    assert not result.ok
    assert {error.path for error in result.errors if error.kind == "missing"} == dropped
    for name in dropped:
        assert any(name in error.fields for error in result.errors)


def test_rules_are_skipped_when_fields_fail(validator):
    result = validator.validate(_group_schema(), {"min_size": 5, "max_size": "three"})

    assert len(result.errors) == 1
    assert result.errors[0].kind == "type"


def test_min_greater_than_max_fails(validator):
    result = validator.validate(_group_schema(), {"min_size": 5, "max_size": 3})

    assert not result.ok
    assert result.errors[0].kind == "rule"
    assert result.errors[0].fields == ("min_size", "max_size")
    assert result.errors[0].message == "min_size (5) cannot be greater than max_size (3)"


def test_desired_capacity_above_max_fails(validator):
    result = validator.validate(_group_schema(), {"min_size": 2, "max_size": 8, "desired_capacity": 10})

    assert not result.ok
    assert result.errors[0].path == "desired_capacity"
    assert "desired_capacity" in result.errors[0].message


def test_first_failing_rule_stops_evaluation(validator):
    # both rules would fail; only the first is reported
    result = validator.validate(_group_schema(), {"min_size": 5, "max_size": 3, "desired_capacity": 10})

    assert len(result.errors) == 1
    assert result.errors[0].fields == ("min_size", "max_size")


@pytest.mark.parametrize("raw, ok", [
    ({"cidr_block": "10.0.0.0/16", "ipv6_cidr_block": "2001:db8::/56"}, False),
    ({}, False),
    ({"cidr_block": "10.0.0.0/16"}, True),
    ({"ipv6_cidr_block": "2001:db8::/56"}, True),
])
def test_mutually_exclusive_and_required_one(validator, raw, ok):
    schema = Schema(
        "network",
        attributes=(Attribute("cidr_block", "CidrBlock"), Attribute("ipv6_cidr_block", "Ipv6CidrBlock")),
        rules=(mutually_exclusive("cidr_block", "ipv6_cidr_block"), at_least_one_of("cidr_block", "ipv6_cidr_block")),
    )

    assert validator.validate(schema, raw).ok is ok


def test_derived_defaults_see_earlier_values(validator):
    schema = Schema("table", attributes=(
        Attribute("name", "string", required=True),
        Attribute("description", "string", default=lambda record: f"{record['name']} table"),
    ))

    result = validator.validate(schema, {"name": "users"})

    assert result.record["description"] == "users table"


def test_invalid_default_is_a_definition_error(validator):
    schema = Schema("broken", attributes=(Attribute("count", "integer", default="many"),))

    with pytest.raises(SchemaDefinitionError):
        validator.validate(schema, {})


def test_input_is_not_mutated(types, validator):
    raw = {"name": "drain", "autoscaling_group_name": "web"}

    validator.validate(_hook_schema(types), raw)

    assert raw == {"name": "drain", "autoscaling_group_name": "web"}


def test_record_is_deeply_immutable(types, validator):
    schema = Schema("tagged", attributes=(
        Attribute("tags", "AwsTags"),
        Attribute("zones", types.array("string")),
    ))
    result = validator.validate(schema, {"tags": {"env": "prod"}, "zones": ["a", "b"]})
    record = result.record

    assert isinstance(record, ValidatedRecord)
    with pytest.raises(TypeError):
        record["tags"] = {}
    with pytest.raises(TypeError):
        record["tags"]["env"] = "dev"
    assert record["zones"] == ("a", "b")
    assert record.to_dict() == {"tags": {"env": "prod"}, "zones": ["a", "b"]}


def test_record_keeps_declaration_order(validator):
    schema = Schema("ordered", attributes=(
        Attribute("a", "string"), Attribute("b", "string", default="x"), Attribute("c", "string"),
    ))

    result = validator.validate(schema, {"c": "3", "a": "1"})

    assert list(result.record) == ["a", "b", "c"]


def test_allow_unknown_passes_extra_keys_through(validator):
    schema = Schema("open", attributes=(Attribute("a", "string"),), allow_unknown=True)

    result = validator.validate(schema, {"a": "1", "extra": {"k": "v"}})

    assert result.record["extra"] == {"k": "v"}


def test_non_mapping_input(validator):
    result = validator.validate(_group_schema(), ["min_size", 1])

    assert not result.ok
    assert "Expected a map of attributes" in result.errors[0].message


def test_raise_for_errors(validator):
    result = validator.validate(_group_schema(), {"min_size": 1})

    with pytest.raises(ValidationFailed) as info:
        result.raise_for_errors("aws_autoscaling_group.web")

    assert info.value.errors == result.errors
    assert "max_size: missing required attribute" in str(info.value)


def test_nested_rule_failure_keeps_rule_kind_and_fields(types, validator):
    inner = Schema("inner", attributes=(
        Attribute("a", "string"),
        Attribute("b", "string"),
    ), rules=(pairs_with("a", {"x": "y"}, "b"),))
    outer = Schema("outer", attributes=(Attribute("inner", types.nested(inner)),))

    result = validator.validate(outer, {"inner": {"a": "x", "b": "z"}})

    assert not result.ok
    error = result.errors[0]
    assert error.kind == "rule"
    assert set(error.fields) == {"a", "b"}
    assert error.path == "inner.a"


def test_nested_unknown_attribute_keeps_unknown_kind(types, validator):
    inner = Schema("inner", attributes=(Attribute("a", "string"),))
    outer = Schema("outer", attributes=(Attribute("inner", types.nested(inner)),))

    result = validator.validate(outer, {"inner": {"a": "x", "typo": 1}})

    assert [(error.path, error.kind, error.fields) for error in result.errors] == [
        ("inner.typo", "unknown", ("typo",)),
    ]


def test_single_block_list_is_accepted_for_nested_attribute(types, validator):
    inner = Schema("toggle", attributes=(Attribute("enabled", "bool", default=False),))
    outer = Schema("table", attributes=(Attribute("point_in_time_recovery", types.nested(inner)),))

    result = validator.validate(outer, {"point_in_time_recovery": [{"enabled": True}]})

    assert result.ok, result.errors
    assert result.record["point_in_time_recovery"]["enabled"] is True
