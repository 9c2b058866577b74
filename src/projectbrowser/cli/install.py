import click

from projectbrowser.installer.models import PhaseFailure, StageLocked, UnlockResult


def _check(outcome):
    """Echo a phase outcome and abort the command when it did not succeed."""
    if isinstance(outcome, StageLocked):
        message = outcome.message
        if outcome.unlock_url:
            message += f"\nUnlock with: projectbrowser unlock ({outcome.unlock_url})"
        raise click.ClickException(message)
    if isinstance(outcome, PhaseFailure):
        prefix = f"[{outcome.phase}] " if outcome.phase else ""
        raise click.ClickException(f"{prefix}{outcome.message}")
    if getattr(outcome, "phase", None):
        click.echo(f"{outcome.phase}: ok")
    return outcome


@click.command()
@click.argument('project_ids', nargs=-1, required=True)
@click.pass_context
def install(ctx, project_ids):
    """Install PROJECT_IDS (e.g. drupalorg_jsonapi/token) into the site.

    The projects must have been seen in a previous search so their package
    names are known.
    """
    from projectbrowser.config.settings import config
    from projectbrowser.services import get_workflow

    if not config.allow_ui_install:
        raise click.ClickException("Installing projects is disabled (allow_ui_install).")

    workflow = get_workflow()
    stage_id = _check(workflow.begin()).stage_id
    _check(workflow.require(stage_id, project_ids))
    _check(workflow.apply(stage_id))
    _check(workflow.post_apply(stage_id))
    _check(workflow.destroy(stage_id))
    result = _check(workflow.activate(project_ids))
    click.echo(f"activate: {result.body()}")
    click.echo(f"Installed {', '.join(project_ids)}")


@click.command()
@click.option('--destination', default=None, help='Where a browser client should return to.')
def unlock(destination):
    """Release the stage lock and reset install progress."""
    from projectbrowser.services import get_workflow

    outcome = _check(get_workflow().unlock(destination))
    if isinstance(outcome, UnlockResult):
        click.echo(outcome.message)


@click.command()
def status():
    """Show the stage lock and install progress."""
    from projectbrowser.services import get_workflow

    workflow = get_workflow()
    lock = workflow.installer.get_lock()
    if lock is None:
        click.echo("Stage: available")
    else:
        owner = "installer" if lock.owned_by_installer else lock.owner
        click.echo(f"Stage: locked ({lock.stage_id}, owner {owner})")
        if workflow.installer.is_applying():
            click.echo("Changes are being applied to the site.")

    progress = workflow.install_state.to_dict()
    if not progress:
        click.echo("No install in progress.")
    for project_id, state in progress.items():
        click.echo(f"{project_id}\t{state}")

    errors, warnings = workflow.validate_environment()
    for message in errors:
        click.echo(f"error: {message}")
    for message in warnings:
        click.echo(f"warning: {message}")
