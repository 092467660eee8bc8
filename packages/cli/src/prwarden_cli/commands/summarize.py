"""summarize command — fill the summary shortcode in a PR description."""

from __future__ import annotations

import click

from prwarden_cli.commands.review import load_cli_config
from prwarden_core.gh.pull_request import GitHubHost, get_repo
from prwarden_core.oracles import PrSummarizer
from prwarden_core.reviewer import get_reviewer, summarize_pull_request


@click.command("summarize")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option("--pr", "pr_number", type=int, required=True, help="Pull request number.")
@click.option(
    "--model",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="AI model provider. Overrides config file.",
)
@click.option(
    "--shortcode",
    default=None,
    help="Placeholder to replace in the PR description. Overrides config file.",
)
@click.pass_context
def summarize_cmd(ctx, repo: str, pr_number: int, model: str | None, shortcode: str | None):
    """Replace the summary shortcode in a PR description with an AI-written summary."""
    config = load_cli_config(ctx, {"model": model, "summary_shortcode": shortcode})
    token = config["github_token"]
    host = GitHubHost(get_repo(repo, token=token), pr_number, token)
    summarize_pull_request(host, PrSummarizer(get_reviewer(config)), config["summary_shortcode"])
