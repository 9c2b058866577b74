import click


@click.group()
@click.pass_context
def db(ctx):
    """Storage commands"""
    from projectbrowser.config.settings import config
    from projectbrowser.db.manager import DatabaseManager

    ctx.obj['db'] = DatabaseManager(config.database_url)


@db.command()
@click.pass_context
def init(ctx):
    """Create the storage schema if it is missing."""
    ctx.obj['db'].init_db()
    click.echo("Database initialized.")


@db.command()
@click.confirmation_option(prompt="This deletes all stored state. Continue?")
@click.pass_context
def reset(ctx):
    """Drop and recreate the storage schema."""
    ctx.obj['db'].reset_db()
    click.echo("Database reset.")
