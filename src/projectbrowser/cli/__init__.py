import logging
import os

import click
import yaml

from projectbrowser.cli.db import db
from projectbrowser.cli.install import install, status, unlock
from projectbrowser.cli.projects import projects
from projectbrowser.config.settings import config as settings


def _find_config(path):
    if path:
        return path
    for candidate in (
        "config.yaml",
        os.path.expanduser("~/.config/projectbrowser/config.yaml"),
        "/etc/projectbrowser/config.yaml",
    ):
        if os.path.exists(candidate):
            return candidate
    return None


@click.group()
@click.option("--config", "config_path", help="Path to the configuration file.")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output.")
@click.pass_context
def main(ctx, config_path, verbose):
    """Project Browser CLI"""
    ctx.ensure_object(dict)
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)

    path = _find_config(config_path)
    if config_path and not os.path.exists(config_path):
        raise click.FileError(config_path, hint="Configuration file not found.")
    if path:
        with open(path, "r") as f:
            values = yaml.safe_load(f) or {}
        if not isinstance(values, dict):
            raise click.UsageError(f"{path} must contain a mapping of settings.")
        settings.update(values)
    ctx.obj["config_path"] = path


main.add_command(db)
main.add_command(projects)
main.add_command(install)
main.add_command(unlock)
main.add_command(status)


@main.command()
@click.option('--host', default='127.0.0.1', help='The host to bind to.')
@click.option('--port', default=8000, help='The port to bind to.')
def server(host, port):
    """Run the FastAPI server."""
    import uvicorn

    from projectbrowser.api.server import app
    uvicorn.run(app, host=host, port=port)


@main.command()
def version():
    """Show the version."""
    from projectbrowser.version import get_version

    click.echo(get_version())
