"""
comet.cli - CLI entry point.

Commands:
  comet compile [stack...]      - Evaluate stacks and write manifests
  comet list                    - List stacks
  comet kubeconfig <stack>      - Print a stack's kubeconfig
"""

import click

from comet.cli.compile_cmd import compile_cmd
from comet.cli.list_cmd import list_cmd
from comet.cli.kube_cmd import kubeconfig_cmd


@click.group()
@click.version_option(package_name="comet")
def main():
    """comet - Stack definitions for Terraform/OpenTofu."""
    pass


main.add_command(compile_cmd, "compile")
main.add_command(list_cmd, "list")
main.add_command(kubeconfig_cmd, "kubeconfig")
