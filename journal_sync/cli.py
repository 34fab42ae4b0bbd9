"""
Flask CLI commands

Usage:
    flask --app run init-db
    flask --app run login alice
    flask --app run sync --force-full
    flask --app run queue
"""
import click
from flask.cli import with_appcontext

from .components import get_components
from .services.sync import RemoteError
from .services.sync_engine import SyncResult

_OUTCOME_COLORS = {
    SyncResult.SUCCESS: 'green',
    SyncResult.SKIPPED: 'yellow',
    SyncResult.RETRY_LATER: 'yellow',
    SyncResult.PERMANENT_FAILURE: 'red',
}


def register_cli(app):
    app.cli.add_command(init_db)
    app.cli.add_command(login)
    app.cli.add_command(sync)
    app.cli.add_command(queue)


@click.command('init-db')
@with_appcontext
def init_db():
    """Create the database tables."""
    components = get_components()
    components.database.create_all()
    click.echo(click.style(f'✓ Tables ready on {components.database.url}', fg='green'))


@click.command('login')
@click.argument('username')
@click.password_option(confirmation_prompt=False)
@with_appcontext
def login(username, password):
    """Log in against the remote API and store the session."""
    components = get_components()
    try:
        body = components.client.login(username, password)
    except RemoteError as e:
        raise click.ClickException(f'Login failed: {e}')

    components.session_store.save_session(
        body['token'],
        username=body.get('username', username),
        user_id=body.get('user_id', body.get('userId')),
    )
    click.echo(click.style(f'✓ Logged in as {body.get("username", username)}', fg='green'))


@click.command('sync')
@click.option('--force-full', is_flag=True, help='Request a full refresh.')
@with_appcontext
def sync(force_full):
    """Run one sync pass now and print its outcome."""
    outcome = get_components().scheduler.run_now(force_full=force_full, reason='cli')
    if outcome is None:
        raise click.ClickException('Sync not started: another sync is running')

    click.echo(click.style(f'Sync {outcome.status.value}', fg=_OUTCOME_COLORS[outcome.status]))
    click.echo(f'  synced:    {outcome.synced_count}')
    click.echo(f'  failed:    {outcome.failed_count}')
    click.echo(f'  fetched:   {outcome.fetched_count}')
    click.echo(f'  merged:    {outcome.merged_count}')
    click.echo(f'  protected: {outcome.protected_count}')
    for summary in outcome.abandoned:
        click.echo(click.style(
            f'  abandoned: {summary["kind"]} {summary["record_id"]} ({summary.get("last_error")})',
            fg='red'
        ))
    if outcome.error:
        click.echo(f'  error:     {outcome.error}')

    if outcome.status == SyncResult.PERMANENT_FAILURE:
        click.get_current_context().exit(1)


@click.command('queue')
@with_appcontext
def queue():
    """List operations waiting to be synced."""
    operations = get_components().queue.pending_operations()
    if not operations:
        click.echo('Queue is empty')
        return

    for operation in operations:
        line = (
            f'#{operation.queue_id:<5} {operation.kind:<7} {operation.record_id}  '
            f'{operation.status} retries={operation.retry_count}'
        )
        if operation.last_error:
            line += f'  last_error={operation.last_error}'
        click.echo(line)
