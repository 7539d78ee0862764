"""
comet.cli.compile_cmd - comet compile command.

    comet compile                 - every stack under stacks_dir
    comet compile dev             - one stack
    comet compile -o build/       - custom output directory
"""

import sys

import click

from comet.cli._common import load, log_level_option, workspace_option
from comet.errors import CometError


@click.command("compile")
@click.argument("stacks", nargs=-1)
@click.option("-o", "--out-dir", default=None,
              help="Output directory (default: out_dir from comet.yaml)")
@workspace_option
@log_level_option
def compile_cmd(stacks, out_dir, workspace_dir, log_level):
    """Evaluate stack scripts and write manifest bundles."""
    from comet.stack.engine import compile_stacks

    cfg = load(workspace_dir, log_level)
    try:
        results = compile_stacks(cfg, list(stacks) or None, out_dir=out_dir,
                                 out=click.get_text_stream("stderr"))
    except (FileNotFoundError, CometError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not results:
        click.echo("Warning: No stacks found.", err=True)
        return

    failed = 0
    for r in results:
        if r.ok:
            click.echo(f"✓ {r.name}: {len(r.files)} files", err=True)
        else:
            failed += 1
            click.echo(f"✗ {r.name}: {r.error}", err=True)

    if failed:
        sys.exit(1)
