"""
Shared fixtures and step definitions for BDD tests.

- runner, service, context: available to all scenario files in this directory
- service: a real ScriptService over an in-memory store, wired in place of get_service
- no_logging: autouse, prevents log file creation during tests
- 'the output contains' / 'the command fails' steps: shared across all feature files
"""

import pytest
from unittest.mock import patch
from click.testing import CliRunner
from pytest_bdd import then, parsers

from scriptcrm.bus.events import EventBus
from scriptcrm.db.store import InMemoryDocumentStore
from scriptcrm.engine.scripts import ScriptService
from scriptcrm.engine.templates import TemplateCatalog


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def service():
    svc = ScriptService(InMemoryDocumentStore(), catalog=TemplateCatalog(), bus=EventBus())
    with patch("scriptcrm.cli.main.get_service", return_value=svc):
        yield svc


@pytest.fixture
def context():
    """Mutable dict shared between Given/When/Then steps within a scenario."""
    return {}


@pytest.fixture(autouse=True)
def no_logging():
    with patch("scriptcrm.cli.main.configure_logging"):
        yield


@then(parsers.parse('the output contains "{text}"'))
def output_contains(context, text):
    assert text in context["result"].output, (
        f"Expected {text!r} in output:\n{context['result'].output}"
    )


@then("the command fails")
def command_fails(context):
    assert context["result"].exit_code == 1, context["result"].output
