import click


@click.group()
@click.pass_context
def projects(ctx):
    """Catalog commands"""
    from projectbrowser.services import get_source_handler

    ctx.obj['handler'] = get_source_handler()


@projects.command()
@click.option('--source', required=True, help='Source plugin id.')
@click.option('--search', default=None, help='Text to search for.')
@click.option('--sort', default=None, help='Sort option, e.g. a_z or usage_total.')
@click.option('--page', default=0, help='Page number, starting at 0.')
@click.option('--limit', default=12, help='Results per page.')
@click.pass_context
def search(ctx, source, search, sort, page, limit):
    """Search a source for projects."""
    from projectbrowser.catalog.exceptions import UnknownSourceError

    handler = ctx.obj['handler']
    query = {"page": page, "limit": limit, "source": source}
    if search:
        query["search"] = search
    if sort:
        query["sort"] = sort
    try:
        result = handler.get_projects(source, query)
    except UnknownSourceError as exc:
        raise click.UsageError(str(exc))

    if result.error:
        raise click.ClickException(result.error)
    click.echo(f"{result.plugin_label}: {result.total_results} result(s)")
    for project in result.list:
        handler.apply_activation_data(project)
        click.echo(f"{source}/{project.id}\t{project.title}\t{project.package_name}\t{project.status.value}")


@projects.command(name='cache-clear')
@click.option('--source', default=None, help='Only clear this source.')
@click.pass_context
def cache_clear(ctx, source):
    """Drop stored query results."""
    ctx.obj['handler'].clear_storage(source)
    click.echo("Stored project data cleared.")
