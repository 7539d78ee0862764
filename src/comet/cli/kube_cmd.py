"""
comet.cli.kube_cmd - comet kubeconfig command.

    comet kubeconfig dev              - print to stdout
    comet kubeconfig dev -o kube.yaml - write to a file
"""

import sys

import click

from comet.cli._common import load, log_level_option, workspace_option
from comet.errors import CometError


@click.command("kubeconfig")
@click.argument("stack_name")
@click.option("-o", "--output", default=None,
              help="Output file (default: stdout)")
@workspace_option
@log_level_option
def kubeconfig_cmd(stack_name, output, workspace_dir, log_level):
    """Print the kubeconfig declared by a stack."""
    from comet.emit.kubeconfig import kubeconfig_yaml
    from comet.stack.engine import evaluate_stacks
    from comet.stack.template import build_context

    cfg = load(workspace_dir, log_level)
    try:
        results = evaluate_stacks(cfg, [stack_name], out=click.get_text_stream("stderr"))
        result = results[0]
        if result.error is not None:
            raise result.error
        stack = result.stack
        if stack.kubeconfig is None:
            click.echo(f"Error: stack '{stack.name}' declares no kubeconfig.", err=True)
            sys.exit(1)
        text = kubeconfig_yaml(
            stack.kubeconfig,
            build_context(stack.name, stack.settings, stack.options),
        )
    except (FileNotFoundError, CometError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not text:
        click.echo("Warning: kubeconfig has no clusters.", err=True)
        return
    if output:
        with open(output, "w") as f:
            f.write(text)
        click.echo(f"Written to {output}", err=True)
    else:
        click.echo(text, nl=False)
