#!/usr/bin/env python3
"""
Script CRM Terminal CLI
Command-line interface for script library operations.
"""

import logging
import sys
import click
from typing import Dict, Optional, Tuple

from scriptcrm.config import config
from scriptcrm.db.store import PostgresDocumentStore
from scriptcrm.engine.errors import ScriptError
from scriptcrm.engine.scripts import ScriptService
from scriptcrm.engine.templates import TemplateCatalog
from scriptcrm.logging_config import configure_logging, log_call
from scriptcrm.models import SCRIPT_STATUSES, SCRIPT_TONES, SCRIPT_TYPES, Script

METRIC_OPTIONS = ('total_uses', 'success_rate', 'average_duration', 'conversion_rate')


def get_service() -> ScriptService:
    """Service wired to the PostgreSQL document store."""
    return ScriptService(PostgresDocumentStore(), catalog=TemplateCatalog())


def _fail(exc: ScriptError):
    """Report a script error on stderr and exit non-zero."""
    logging.getLogger("scriptcrm").warning(f"cli | {type(exc).__name__}: {exc}")
    click.echo(f"Error: {exc}", err=True)
    sys.exit(1)


def _parse_vars(pairs: Tuple[str, ...]) -> Dict[str, str]:
    """Turn ('firstName=Ann', ...) into a dict. Raises click.BadParameter on bad pairs."""
    values = {}
    for pair in pairs:
        key, sep, value = pair.partition('=')
        if not sep or not key.strip():
            raise click.BadParameter(f"expected key=value, got {pair!r}", param_hint='--var')
        values[key.strip()] = value
    return values


def _print_script(script: Script):
    click.echo(f"\n{'='*80}")
    click.echo(f"SCRIPT {script.id}: {script.name}")
    click.echo(f"{'='*80}")
    click.echo(f"Type:        {script.type}")
    click.echo(f"Tone:        {script.tone}")
    click.echo(f"Objective:   {script.objective or '(not set)'}")
    click.echo(f"Industry:    {script.industry or '(not set)'}")
    click.echo(f"Status:      {script.status}")
    click.echo(f"Version:     {script.version}")
    if script.parent_script_id:
        click.echo(f"Parent:      {script.parent_script_id}")
    click.echo(f"Variables:   {', '.join(script.variables) or '(none)'}")
    click.echo(f"Updated:     {script.updated_at}")

    content = script.content
    click.echo(f"\n{'-'*80}")
    if content.get('opening'):
        click.echo(f"Opening:\n  {content['opening']}")
    if content.get('main_points'):
        click.echo("Main points:")
        for n, point in enumerate(content['main_points'], 1):
            click.echo(f"  {n}. {point}")
    if content.get('objection_handling'):
        click.echo("Objections:")
        for key, reply in content['objection_handling'].items():
            click.echo(f"  [{key}] {reply}")
    if content.get('closing'):
        click.echo(f"Closing:\n  {content['closing']}")
    if content.get('fallback_responses'):
        click.echo("Fallbacks:")
        for reply in content['fallback_responses']:
            click.echo(f"  - {reply}")

    metrics = script.performance_metrics
    click.echo(f"\n{'-'*80}")
    click.echo(
        f"Uses: {metrics['total_uses']}  Success: {metrics['success_rate']}  "
        f"Conversion: {metrics['conversion_rate']}  Last used: {metrics['last_used'] or 'never'}"
    )
    click.echo()


def _print_table(scripts):
    click.echo(f"{'ID':<34} {'Name':<30} {'Type':<6} {'Status':<9} {'Ver':<4}")
    click.echo("-" * 86)
    for s in scripts:
        click.echo(f"{s.id:<34} {s.name[:28]:<30} {s.type:<6} {s.status:<9} {s.version:<4}")


@click.group()
@click.option('--owner', default=lambda: config.DEFAULT_OWNER, help='Owner id to act as (default: DEFAULT_OWNER)')
@click.pass_context
def cli(ctx, owner):
    """Script CRM - call / SMS / email script library"""
    configure_logging()
    ctx.ensure_object(dict)
    ctx.obj['owner'] = owner


def _owner(ctx) -> str:
    owner = ctx.obj.get('owner')
    if not owner:
        raise click.UsageError("No owner given. Pass --owner or set DEFAULT_OWNER.")
    return owner


# =============================================================================
# SCRIPT COMMANDS
# =============================================================================

@cli.group()
def scripts():
    """Manage scripts"""
    pass


@scripts.command('list')
@click.option('--type', 'script_type', type=click.Choice(SCRIPT_TYPES), help='Filter by type')
@click.option('--status', type=click.Choice(SCRIPT_STATUSES), help='Filter by status')
@click.option('--industry', help='Filter by industry')
@click.option('--objective', help='Filter by objective')
@click.option('--limit', default=100, show_default=True, help='Max results')
@click.pass_context
@log_call
def scripts_list(ctx, script_type, status, industry, objective, limit):
    """List your scripts, most recently updated first"""
    try:
        page = get_service().get_scripts(_owner(ctx), {
            'type': script_type,
            'status': status,
            'industry': industry,
            'objective': objective,
            'limit': limit,
        })
    except ScriptError as e:
        _fail(e)

    if not page.scripts:
        click.echo("No scripts found.")
        return

    click.echo(f"\nFound {page.total} scripts{' (more available)' if page.has_more else ''}:\n")
    _print_table(page.scripts)


@scripts.command('show')
@click.argument('script_id')
@click.pass_context
@log_call
def scripts_show(ctx, script_id):
    """Show full script details"""
    try:
        script = get_service().get_script(script_id, _owner(ctx))
    except ScriptError as e:
        _fail(e)
    _print_script(script)


@scripts.command('create')
@click.option('--name', prompt='Name', help='Script name')
@click.option('--type', 'script_type', type=click.Choice(SCRIPT_TYPES), default='call', show_default=True)
@click.option('--tone', type=click.Choice(SCRIPT_TONES), default='professional', show_default=True)
@click.option('--objective', default='', help='e.g. lead_generation, follow_up')
@click.option('--industry', default='')
@click.option('--opening', default='', help='Opening line (required for call scripts)')
@click.option('--point', 'points', multiple=True, help='Main point (repeatable; required for sms)')
@click.option('--closing', default='')
@click.option('--tag', 'tags', multiple=True, help='Tag (repeatable)')
@click.pass_context
@log_call
def scripts_create(ctx, name, script_type, tone, objective, industry, opening, points, closing, tags):
    """Create a script from options"""
    data = {
        'name': name,
        'type': script_type,
        'tone': tone,
        'objective': objective,
        'industry': industry,
        'tags': list(tags),
        'content': {
            'opening': opening,
            'main_points': list(points),
            'closing': closing,
        },
    }
    try:
        script = get_service().create_script(data, _owner(ctx))
    except ScriptError as e:
        _fail(e)
    click.echo(f"\n✓ Created script {script.id}: {script.name}")
    if script.variables:
        click.echo(f"  Variables: {', '.join(script.variables)}")


@scripts.command('from-template')
@click.argument('script_type', type=click.Choice(SCRIPT_TYPES))
@click.argument('objective')
@click.option('--name', prompt='Name', help='Script name')
@click.option('--tone', type=click.Choice(SCRIPT_TONES), default='professional', show_default=True)
@click.pass_context
@log_call
def scripts_from_template(ctx, script_type, objective, name, tone):
    """Create a script seeded from a built-in template"""
    try:
        script = get_service().create_from_template(script_type, objective, _owner(ctx), name, tone=tone)
    except ScriptError as e:
        _fail(e)
    click.echo(f"\n✓ Created script {script.id} from {script_type}/{objective} template")
    click.echo(f"  Variables: {', '.join(script.variables) or '(none)'}")


@scripts.command('edit')
@click.argument('script_id')
@click.option('--name', help='New name')
@click.option('--status', type=click.Choice(SCRIPT_STATUSES), help='New status')
@click.option('--tone', type=click.Choice(SCRIPT_TONES), help='New tone')
@click.option('--objective', help='New objective')
@click.option('--opening', help='New opening line')
@click.option('--closing', help='New closing line')
@click.pass_context
@log_call
def scripts_edit(ctx, script_id, name, status, tone, objective, opening, closing):
    """Edit a script (use options to set fields)"""
    patch = {k: v for k, v in {
        'name': name, 'status': status, 'tone': tone, 'objective': objective,
    }.items() if v is not None}
    content = {k: v for k, v in {'opening': opening, 'closing': closing}.items() if v is not None}
    if content:
        patch['content'] = content

    if not patch:
        click.echo("No updates specified. Use --name, --status, --tone, --objective, --opening or --closing", err=True)
        return

    try:
        script = get_service().update_script(script_id, _owner(ctx), patch)
    except ScriptError as e:
        _fail(e)
    click.echo(f"✓ Updated script {script.id}")


@scripts.command('delete')
@click.argument('script_id')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@click.pass_context
@log_call
def scripts_delete(ctx, script_id, yes):
    """Permanently delete a script"""
    if not yes and not click.confirm(f"Delete script {script_id}? This cannot be undone"):
        click.echo("Aborted.")
        return
    try:
        get_service().delete_script(script_id, _owner(ctx))
    except ScriptError as e:
        _fail(e)
    click.echo(f"✓ Deleted script {script_id}")


@scripts.command('duplicate')
@click.argument('script_id')
@click.option('--name', help='Name for the copy (default: "<name> (Copy)")')
@click.pass_context
@log_call
def scripts_duplicate(ctx, script_id, name):
    """Copy a script under a new id"""
    try:
        script = get_service().duplicate_script(script_id, _owner(ctx), name)
    except ScriptError as e:
        _fail(e)
    click.echo(f"✓ Duplicated {script_id} as {script.id}: {script.name}")


@scripts.command('version')
@click.argument('script_id')
@click.pass_context
@log_call
def scripts_version(ctx, script_id):
    """Save the next version of a script"""
    try:
        script = get_service().create_version(script_id, _owner(ctx))
    except ScriptError as e:
        _fail(e)
    click.echo(f"✓ Created version {script.version} of {script_id}: {script.id}")


@scripts.command('versions')
@click.argument('script_id')
@click.pass_context
@log_call
def scripts_versions(ctx, script_id):
    """List versions derived from a script"""
    try:
        versions = get_service().get_script_versions(script_id, _owner(ctx))
    except ScriptError as e:
        _fail(e)

    if not versions:
        click.echo(f"No versions of {script_id}.")
        return
    _print_table(versions)


@scripts.command('render')
@click.argument('script_id')
@click.option('--var', 'pairs', multiple=True, help='Placeholder value as key=value (repeatable)')
@click.pass_context
@log_call
def scripts_render(ctx, script_id, pairs):
    """Show a script with placeholders filled in"""
    values = _parse_vars(pairs)
    try:
        script = get_service().render_script(script_id, _owner(ctx), values)
    except ScriptError as e:
        _fail(e)
    _print_script(script)


@scripts.command('search')
@click.argument('term')
@click.option('--type', 'script_type', type=click.Choice(SCRIPT_TYPES), help='Filter by type')
@click.option('--status', type=click.Choice(SCRIPT_STATUSES), help='Filter by status')
@click.pass_context
@log_call
def scripts_search(ctx, term, script_type, status):
    """Search names, descriptions and tags"""
    try:
        results = get_service().search_scripts(_owner(ctx), term, {'type': script_type, 'status': status})
    except ScriptError as e:
        _fail(e)

    if not results:
        click.echo(f"No scripts match {term!r}.")
        return
    click.echo(f"\n{len(results)} scripts match {term!r}:\n")
    _print_table(results)


@scripts.command('metrics')
@click.argument('script_id')
@click.option('--total-uses', type=int)
@click.option('--success-rate', type=float)
@click.option('--average-duration', type=float)
@click.option('--conversion-rate', type=float)
@log_call
def scripts_metrics(script_id, total_uses, success_rate, average_duration, conversion_rate):
    """Record usage metrics for a script"""
    given = dict(zip(METRIC_OPTIONS, (total_uses, success_rate, average_duration, conversion_rate)))
    metrics = {k: v for k, v in given.items() if v is not None}
    try:
        script = get_service().update_metrics(script_id, metrics)
    except ScriptError as e:
        _fail(e)
    click.echo(f"✓ Metrics updated for {script.id} (last used {script.performance_metrics['last_used']})")


# =============================================================================
# CATALOG AND REPORTING COMMANDS
# =============================================================================

@cli.command('templates')
@click.option('--type', 'script_type', type=click.Choice(SCRIPT_TYPES), help='Filter by type')
@click.option('--objective', help='Filter by objective')
@log_call
def templates(script_type: Optional[str], objective: Optional[str]):
    """List built-in script templates"""
    entries = get_service().get_templates(script_type, objective)
    if not entries:
        click.echo("No templates found.")
        return

    for entry in entries:
        click.echo(f"\n{entry['type']}/{entry['objective']}")
        template = entry['template']
        first_line = template.get('opening') or (template.get('main_points') or [''])[0]
        click.echo(f"  {first_line}")


@cli.command('analytics')
@click.option('--range', 'time_range', default='all', show_default=True, help="'all' or a window like 30d, 12h, 2w")
@click.pass_context
@log_call
def analytics(ctx, time_range):
    """Script usage summary"""
    try:
        report = get_service().get_analytics(_owner(ctx), time_range)
    except ScriptError as e:
        _fail(e)

    click.echo(f"\nScripts ({report['time_range']}): {report['total_scripts']}")
    click.echo(
        f"  active {report['active_scripts']}  draft {report['draft_scripts']}  "
        f"archived {report['archived_scripts']}"
    )
    click.echo("  " + "  ".join(f"{t} {n}" for t, n in report['by_type'].items()))

    perf = report['performance']
    click.echo(f"\nTotal uses: {perf['total_uses']}")
    click.echo(f"Average success rate:    {perf['average_success_rate']:.2f}")
    click.echo(f"Average conversion rate: {perf['average_conversion_rate']:.2f}")

    if report['top_performing']:
        click.echo("\nTop performing:")
        for s in report['top_performing']:
            click.echo(f"  {s['name'][:40]:<42} success {s['success_rate']}  uses {s['total_uses']}")
    click.echo()


@cli.command('health')
@log_call
def health():
    """Check the script store is reachable"""
    status = get_service().health_check()
    click.echo(f"{status['service']}: {status['status']}")
    if status['status'] != 'healthy':
        click.echo(f"  {status.get('error')}", err=True)
        sys.exit(1)


@cli.command('init-db')
@log_call
def init_db():
    """Create the document table if it does not exist"""
    try:
        PostgresDocumentStore().ensure_schema()
    except ScriptError as e:
        _fail(e)
    click.echo("✓ Database schema ready")


if __name__ == '__main__':
    cli()
