"""Shared CLI helpers."""

import sys

import click

from comet.config import load_config
from comet.errors import CometError
from comet.log import setup_logging


def workspace_option(f):
    return click.option("-C", "--dir", "workspace_dir", default=None,
                        help="Project directory with comet.yaml (default: pwd)")(f)


def log_level_option(f):
    return click.option("--log-level", default=None,
                        help="Log level (default: from comet.yaml)")(f)


def load(workspace_dir, log_level):
    """Read config and set up logging, exiting on a bad comet.yaml."""
    try:
        cfg = load_config(workspace_dir)
    except CometError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    setup_logging(log_level or cfg.log_level)
    return cfg
