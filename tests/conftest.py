import logging

import pytest

from synthesizer.builtin_resources import builtin_registry
from typesys.type_system import TypeRegistry, default_registry
from typesys.validator import SchemaValidator


@pytest.fixture
def types() -> TypeRegistry:
    return default_registry()


@pytest.fixture
def validator(types) -> SchemaValidator:
    return SchemaValidator(types)


@pytest.fixture
def registry():
    return builtin_registry()


@pytest.fixture
def cli_home(tmp_path):
    """Config file whose logs land in the test's temp dir"""
    config_file = tmp_path / "config.yaml"
    config_file.write_text(f"log_dir: {tmp_path / 'logs'}\noutput_dir: {tmp_path / 'IaC'}\ncolors: false\n")
    yield config_file
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if handler.get_name() in ("tfsynth-file", "tfsynth-console"):
            root_logger.removeHandler(handler)
            handler.close()
