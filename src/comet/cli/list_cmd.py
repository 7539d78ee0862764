"""
comet.cli.list_cmd - comet list command.

Shows every stack found under stacks_dir.
"""

import sys

import click

from comet.cli._common import load, log_level_option, workspace_option


@click.command("list")
@workspace_option
@log_level_option
def list_cmd(workspace_dir, log_level):
    """List stacks."""
    import io

    from comet.stack.engine import evaluate_stacks

    cfg = load(workspace_dir, log_level)
    try:
        # script print() output is not part of the listing
        results = evaluate_stacks(cfg, out=io.StringIO())
    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not results:
        click.echo("No stacks found.")
        return

    click.echo(f"{'STACK':<20} {'COMPONENTS':<12} {'PATH':<40} DESCRIPTION")
    click.echo("─" * 90)
    for r in results:
        rel = _relative(r.path, cfg.root)
        if r.ok:
            desc = r.stack.metadata.description
            click.echo(f"{r.name:<20} {len(r.stack.graph):<12} {rel:<40} {desc}")
        else:
            click.echo(f"{r.name:<20} {'-':<12} {rel:<40} error: {r.error.message}")


def _relative(path, root):
    try:
        return str(path.relative_to(root))
    except ValueError:
        return str(path)
