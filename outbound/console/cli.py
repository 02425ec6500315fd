"""Click CLI for managing batch-call campaigns."""

from __future__ import annotations

import click

from outbound.console.client import BatchCallsAPIError, BatchCallsClient
from outbound.console.views import DetailView, ListView

CANCEL_PROMPT = "Are you sure you want to cancel this batch call?"


@click.group()
@click.option(
    "--api-url",
    envvar="BATCH_CALLS_API_URL",
    default="http://localhost:3000",
    show_default=True,
    help="Base URL of the batch-calling backend.",
)
@click.option("--token", envvar="BATCH_CALLS_API_TOKEN", default=None, help="Bearer token.")
@click.pass_context
def cli(ctx: click.Context, api_url: str, token: str | None) -> None:
    """Outbound batch-call console."""
    ctx.ensure_object(dict)
    if "client" not in ctx.obj:
        ctx.obj["client"] = ctx.with_resource(BatchCallsClient(api_url, token=token))


def _client(ctx: click.Context) -> BatchCallsClient:
    return ctx.obj["client"]


@cli.command("list")
@click.option("--search", "-s", default="", help="Filter by name (case-insensitive).")
@click.pass_context
def list_command(ctx: click.Context, search: str) -> None:
    """List batch calls."""
    view = ListView(_client(ctx))
    click.echo(view.render(view.load(), search))


@cli.command()
@click.argument("batch_id")
@click.option("--retry", "do_retry", is_flag=True, help="Retry this batch call.")
@click.option("--cancel", "do_cancel", is_flag=True, help="Cancel this batch call.")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def show(ctx: click.Context, batch_id: str, do_retry: bool, do_cancel: bool, yes: bool) -> None:
    """Show one batch call and its recipients."""
    if do_retry and do_cancel:
        raise click.UsageError("--retry and --cancel are mutually exclusive")

    view = DetailView(_client(ctx))
    if do_cancel:
        if not yes and not click.confirm(CANCEL_PROMPT):
            return
        try:
            view.cancel(batch_id)
        except BatchCallsAPIError as e:
            raise click.ClickException(str(e)) from e
        # Back to the list once the campaign is gone
        list_view = ListView(_client(ctx))
        click.echo(list_view.render(list_view.load()))
        return

    if do_retry:
        try:
            batch = view.retry(batch_id)
        except BatchCallsAPIError as e:
            raise click.ClickException(str(e)) from e
    else:
        batch = view.load(batch_id)
    click.echo(view.render(batch))


@cli.command()
@click.argument("batch_id")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def cancel(ctx: click.Context, batch_id: str, yes: bool) -> None:
    """Cancel a batch call, then show the refreshed list."""
    if not yes and not click.confirm(CANCEL_PROMPT):
        return
    view = ListView(_client(ctx))
    try:
        batch_calls = view.cancel(batch_id)
    except BatchCallsAPIError as e:
        raise click.ClickException(str(e)) from e
    click.echo(view.render(batch_calls))


@cli.command()
@click.argument("batch_id")
@click.pass_context
def retry(ctx: click.Context, batch_id: str) -> None:
    """Retry a batch call, then show the refreshed list."""
    view = ListView(_client(ctx))
    try:
        batch_calls = view.retry(batch_id)
    except BatchCallsAPIError as e:
        raise click.ClickException(str(e)) from e
    click.echo(view.render(batch_calls))
