import pytest

from synthesizer.builtin_resources import BUILTIN_RESOURCES, builtin_registry
from synthesizer.registry import ResourceDefinition, ResourceRegistry
from typesys.errors import (
    RegistrationConflictError,
    RegistryFrozenError,
    SchemaDefinitionError,
    UnknownResourceTypeError,
)
from typesys.schema import Attribute, Schema
from typesys.type_system import default_registry

WIDGET = Schema("widget", attributes=(Attribute("name", "string", required=True),))


def test_register_and_lookup():
    registry = ResourceRegistry(default_registry())

    definition = registry.register_schema("widget", WIDGET, outputs=["size"])

    assert "widget" in registry
    assert registry.get("widget") is definition
    assert registry.lookup("gadget") is None
    assert definition.outputs == ("size",)
    assert len(registry) == 1
    assert list(registry) == [definition]


def test_identical_registration_is_idempotent():
    registry = ResourceRegistry(default_registry())

    first = registry.register(ResourceDefinition("widget", WIDGET))
    second = registry.register(ResourceDefinition("widget", WIDGET))

    assert first is second
    assert len(registry) == 1


def test_conflicting_registration_fails():
    registry = ResourceRegistry(default_registry())
    registry.register_schema("widget", WIDGET)
    other = Schema("widget", attributes=(Attribute("name", "integer"),))

    with pytest.raises(RegistrationConflictError, match="widget"):
        registry.register_schema("widget", other)


def test_undefined_named_type_fails_at_registration():
    registry = ResourceRegistry(default_registry())
    broken = Schema("broken", attributes=(Attribute("zone", "NoSuchType"),))

    with pytest.raises(SchemaDefinitionError):
        registry.register_schema("broken", broken)
    assert "broken" not in registry


def test_frozen_registry_rejects_registration():
    registry = ResourceRegistry(default_registry()).freeze()

    assert registry.frozen
    with pytest.raises(RegistryFrozenError):
        registry.register_schema("widget", WIDGET)


def test_unknown_type_lists_registered_names():
    registry = ResourceRegistry(default_registry())
    registry.register_schema("widget", WIDGET)

    with pytest.raises(UnknownResourceTypeError) as info:
        registry.get("gadget")

    assert info.value.resource_type == "gadget"
    assert info.value.known == ("widget",)
    assert "registered: widget" in str(info.value)


def test_builtin_registry_is_frozen_and_complete(registry):
    assert registry.frozen
    assert registry.names() == sorted(BUILTIN_RESOURCES)


def test_builtin_registries_are_independent():
    first = builtin_registry()
    second = builtin_registry()

    assert first is not second
    assert first.type_registry is not second.type_registry


def test_description_falls_back_to_schema(registry):
    assert registry.get("aws_vpc").description == "Virtual private cloud"
