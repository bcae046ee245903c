"""CLI entrypoint: Typer app definition and command registration"""

import typer

from pubsync.cli.commands import add_author_cmd, init_cmd, orphans_cmd, plan_cmd, prune_cmd, sync_cmd


app = typer.Typer(name="pubsync", no_args_is_help=True, help="Reconcile a WordPress export into the live content store")

app.command(name="init")(init_cmd)
app.command(name="plan")(plan_cmd)
app.command(name="sync")(sync_cmd)
app.command(name="orphans")(orphans_cmd)
app.command(name="prune")(prune_cmd)
app.command(name="add-author")(add_author_cmd)
