from pytest_bdd import scenarios, given, when, parsers
from scriptcrm.cli.main import cli

scenarios("features/scripts.feature")


@given(parsers.parse('agent "{owner}" has no scripts'))
def no_scripts(service, owner):
    assert service.get_scripts(owner).total == 0


@given(parsers.parse('agent "{owner}" has a "{script_type}" script from the "{objective}" template named "{name}"'))
def script_from_template(service, context, owner, script_type, objective, name):
    context["script"] = service.create_from_template(script_type, objective, owner, name)


@when(parsers.parse('agent "{owner}" lists scripts'))
def list_scripts(runner, context, owner):
    context["result"] = runner.invoke(cli, ["--owner", owner, "scripts", "list"])


@when(parsers.parse('agent "{owner}" creates a "{script_type}" script from the "{objective}" template named "{name}"'))
def create_from_template(runner, service, context, owner, script_type, objective, name):
    context["result"] = runner.invoke(
        cli, ["--owner", owner, "scripts", "from-template", script_type, objective, "--name", name],
    )


@when(parsers.parse('agent "{owner}" creates a call script named "{name}" without an opening'))
def create_without_opening(runner, service, context, owner, name):
    context["result"] = runner.invoke(
        cli, ["--owner", owner, "scripts", "create", "--name", name, "--type", "call"],
    )


@when(parsers.parse('agent "{owner}" renders the script with firstName "{first_name}" and topic "{topic}"'))
def render_script(runner, context, owner, first_name, topic):
    context["result"] = runner.invoke(cli, [
        "--owner", owner, "scripts", "render", context["script"].id,
        "--var", f"firstName={first_name}", "--var", f"topic={topic}",
    ])


@when(parsers.parse('agent "{owner}" saves a new version of the script'))
def save_version(runner, context, owner):
    result = runner.invoke(cli, ["--owner", owner, "scripts", "version", context["script"].id])
    assert result.exit_code == 0, result.output


@when(parsers.parse('agent "{owner}" lists versions of the script'))
def list_versions(runner, context, owner):
    context["result"] = runner.invoke(cli, ["--owner", owner, "scripts", "versions", context["script"].id])


@when(parsers.parse('agent "{owner}" views the script'))
def view_script(runner, context, owner):
    context["result"] = runner.invoke(cli, ["--owner", owner, "scripts", "show", context["script"].id])


@when(parsers.parse('agent "{owner}" duplicates the script'))
def duplicate_script(runner, context, owner):
    context["result"] = runner.invoke(cli, ["--owner", owner, "scripts", "duplicate", context["script"].id])
