"""gwsync CLI — the main entry point for gateway policy reconciliation."""

import json
import logging
import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from gwsync import __version__
from gwsync.errors import ConflictError, GatewaySyncError

console = Console()


def _client(ctx: click.Context):
    from gwsync.client import PolicyClient
    from gwsync.config import ManagerSettings

    opts = ctx.obj
    settings = ManagerSettings.from_env(
        host=opts["host"],
        username=opts["username"],
        allow_unverified_ssl=opts["insecure"] or None,
        global_manager=opts["global_manager"] or None,
    )
    return PolicyClient(settings)


def _fail(e: GatewaySyncError) -> None:
    console.print(f"[red]Error:[/] {escape(str(e))}")
    if isinstance(e, ConflictError):
        console.print("[yellow]The policy changed remotely. Re-run the command to retry.[/]")
    sys.exit(1)


def _print_rules(title: str, rules) -> None:
    if not rules:
        console.print(f"[dim]No {title.lower()}.[/]")
        return

    table = Table(title=f"{title} ({len(rules)})")
    table.add_column("Seq", justify="right", style="dim")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Scope")
    table.add_column("Action", style="green")
    table.add_column("Logged", justify="center")

    for rule in rules:
        table.add_row(
            "" if rule.sequence_number is None else str(rule.sequence_number),
            rule.id,
            rule.display_name[:40],
            ", ".join(rule.scope),
            rule.action.value,
            "Y" if rule.logged else "",
        )
    console.print(table)


@click.group()
@click.version_option(version=__version__)
@click.option("--host", envvar="NSX_MANAGER", default=None, help="NSX manager host or URL")
@click.option("--username", "-u", envvar="NSX_USERNAME", default=None, help="Basic auth user")
@click.option("--insecure", is_flag=True, help="Skip TLS certificate verification")
@click.option("--global-manager", is_flag=True, help="Target the Global Manager API")
@click.option("--state-dir", "-s", default=".", help="Directory holding .gwsync/state.json")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx, host, username, insecure, global_manager, state_dir, verbose):
    """gwsync — reconcile declared gateway policy rules with NSX-T.

    Ordinary rules are diffed by identifier, default rules by scope, and
    every change is submitted as one atomic patch.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
    ctx.obj = {
        "host": host,
        "username": username,
        "insecure": insecure,
        "global_manager": global_manager,
        "state_dir": state_dir,
    }


# ── Show ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("policy_path")
@click.pass_context
def show(ctx, policy_path: str):
    """Read a gateway policy and list its rules."""
    from gwsync.config import Declaration
    from gwsync.reconciler import Intent, Reconciler

    try:
        with _client(ctx) as client:
            view = Reconciler(client, Declaration(path=policy_path)).reconcile(Intent.READ)
    except GatewaySyncError as e:
        _fail(e)
        return

    if view is None:
        console.print(f"[yellow]Gateway Policy {policy_path} not found.[/]")
        return

    console.print(f"\n[bold blue]gwsync[/] — {view.path} (revision {view.revision})\n")
    if view.description:
        console.print(f"  {view.description}\n")
    _print_rules("Rules", view.rules)
    _print_rules("Default Rules", view.default_rules)


# ── Plan ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("declaration_path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def plan(ctx, declaration_path: str):
    """Print the patch that 'apply' would submit, without submitting it."""
    from gwsync.codec import tree_to_dict
    from gwsync.config import load_declaration
    from gwsync.reconciler import Intent, Reconciler
    from gwsync.state import StateStore

    state = StateStore(ctx.obj["state_dir"])
    try:
        decl = load_declaration(declaration_path)
        decl.previous = state.load(decl.path)
        intent = Intent.CREATE if decl.previous is None else Intent.UPDATE
        with _client(ctx) as client:
            tree = Reconciler(client, decl).plan(intent)
    except GatewaySyncError as e:
        _fail(e)
        return

    click.echo(json.dumps(tree_to_dict(tree), indent=2))


# ── Apply ────────────────────────────────────────────────────────────


@main.command()
@click.argument("declaration_path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def apply(ctx, declaration_path: str):
    """Reconcile a declared gateway policy and record the result."""
    from gwsync.config import load_declaration
    from gwsync.reconciler import Intent, Reconciler
    from gwsync.state import StateStore

    state = StateStore(ctx.obj["state_dir"])
    try:
        decl = load_declaration(declaration_path)
        decl.previous = state.load(decl.path)
        intent = Intent.CREATE if decl.previous is None else Intent.UPDATE

        console.print(f"\n[bold blue]gwsync[/] — {intent.value}: {decl.path}\n")
        with _client(ctx) as client:
            view = Reconciler(client, decl).reconcile(intent)
        state.save(view)
    except GatewaySyncError as e:
        _fail(e)
        return

    console.print(
        f"  [green]v[/] revision {view.revision}: "
        f"{len(view.rules)} rules, {len(view.default_rules)} default rules"
    )


# ── Revert ───────────────────────────────────────────────────────────


@main.command()
@click.argument("declaration_path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def revert(ctx, declaration_path: str):
    """Revert a gateway policy to its system defaults and forget its state.

    Ordinary rules are removed and default rules restored. The policy
    object itself is not deleted.
    """
    from gwsync.config import load_declaration
    from gwsync.reconciler import Intent, Reconciler
    from gwsync.state import StateStore

    state = StateStore(ctx.obj["state_dir"])
    try:
        decl = load_declaration(declaration_path)
        console.print(f"\n[bold blue]gwsync[/] — revert: {decl.path}\n")
        with _client(ctx) as client:
            Reconciler(client, decl).reconcile(Intent.DELETE)
        state.forget(decl.path)
    except GatewaySyncError as e:
        _fail(e)
        return

    console.print("  [green]v[/] Reverted to defaults")


if __name__ == "__main__":
    main()
