"""CLI entry point for prwarden.

Commands:
  review     — reconcile and review a pull request, then decide a verdict
  summarize  — replace the summary shortcode in a PR description
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.logging import RichHandler

from prwarden_cli.commands.review import review_cmd
from prwarden_cli.commands.summarize import summarize_cmd


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # SDK transports are chatty at DEBUG; keep them at WARNING.
    for noisy in ("urllib3", "httpx", "httpcore", "github", "anthropic", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


@click.group()
@click.version_option(
    version=importlib.metadata.version("prwarden"),
    prog_name="prwarden",
)
@click.option(
    "--config",
    "config_path",
    default=".prwarden.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRWARDEN_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """AI-powered GitHub PR reviewer that keeps its comments in sync across pushes."""
    _configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


main.add_command(review_cmd)
main.add_command(summarize_cmd)
