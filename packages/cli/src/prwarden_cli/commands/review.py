"""review command — reconcile and review a pull request."""

from __future__ import annotations

import click
from rich.console import Console

from prwarden_core.gh.pull_request import GitHubHost, get_pull_requests, get_repo
from prwarden_core.jira import build_jira_client
from prwarden_core.reviewer import ReviewAbortedError, ReviewDriver, ReviewSummary, get_reviewer

console = Console()


def load_cli_config(ctx: click.Context, overrides: dict) -> dict:
    """Load config, resolve the GitHub token and check the provider key is present."""
    from prwarden_cli.auth import resolve_github_token
    from prwarden_core.config import load_config, validate_config

    config_path = (ctx.obj or {}).get("config_path", ".prwarden.yml")
    config = load_config(config_path, cli_overrides=overrides)
    try:
        validate_config(config)
    except ValueError as e:
        raise click.UsageError(str(e))

    # Resolve token: env var first, then gh CLI session.
    token = resolve_github_token()
    if not token:
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN (or GH_TOKEN) or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )
    config["github_token"] = token

    if config["model"] == "anthropic" and not config.get("anthropic_api_key"):
        raise click.UsageError("ANTHROPIC_API_KEY environment variable is not set.")
    if config["model"] == "openai" and not config.get("openai_api_key"):
        raise click.UsageError("OPENAI_API_KEY environment variable is not set.")
    return config


def _print_summary(summary: ReviewSummary) -> None:
    if summary.skipped:
        console.print("[yellow]Review skipped (PR already has review comments); verdict checked only.[/yellow]")
    else:
        console.print(
            f"[bold]{len(summary.reviewed_files)}[/bold] file(s) reviewed · "
            f"[bold]{summary.published_comments}[/bold] comment(s) posted · "
            f"[bold]{summary.resolved_comments}[/bold] resolved · "
            f"[bold]{summary.duplicates_dropped}[/bold] duplicate(s) skipped"
        )
    console.print(f"Verdict: [bold]{summary.verdict or 'none'}[/bold]")
    if summary.failed_units or summary.failed_writes:
        console.print(
            f"[red]{summary.failed_units} unit(s) skipped, {summary.failed_writes} write(s) failed.[/red]"
        )


@click.command("review")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option(
    "--pr",
    "pr_number",
    type=int,
    default=None,
    help="Pull request number. Omit to list open PRs interactively.",
)
@click.option(
    "--model",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="AI model provider. Overrides config file.",
)
@click.option(
    "--guidelines",
    "guidelines_path",
    default=None,
    help="Path to a Markdown guidelines file appended to the review prompt.",
)
@click.option(
    "--granularity",
    type=click.Choice(["file", "hunk"]),
    default=None,
    help="Issue one model call per file or per hunk. Overrides config file.",
)
@click.option(
    "--shadow",
    "-s",
    is_flag=True,
    help="Dry-run mode: print review comments without writing to GitHub.",
)
@click.option(
    "--full-review",
    "full_review",
    is_flag=True,
    help="Review the PR even if it already has review comments.",
)
@click.pass_context
def review_cmd(
    ctx,
    repo: str,
    pr_number: int | None,
    model: str | None,
    guidelines_path: str | None,
    granularity: str | None,
    shadow: bool,
    full_review: bool,
):
    """Review a pull request and reconcile earlier review comments.

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub personal access token (or use gh CLI)
      ANTHROPIC_API_KEY    Required when using --model anthropic
      OPENAI_API_KEY       Required when using --model openai
    Optional:
      JIRA_BASE_URL, JIRA_USERNAME, JIRA_TOKEN   Link the PR's JIRA task
    """
    config = load_cli_config(ctx, {"model": model, "guidelines": guidelines_path, "granularity": granularity})
    token = config["github_token"]
    this_repo = get_repo(repo, token=token)

    if pr_number is None:
        prs = list(get_pull_requests(this_repo))
        if not prs:
            console.print("[yellow]No open pull requests found.[/yellow]")
            return
        console.print("\nOpen pull requests:")
        for pr in prs:
            console.print(f"  [bold]#{pr.number}[/bold]  {pr.title}")
        pr_number = click.prompt("\nEnter the pull request number", type=int)

    host = GitHubHost(
        this_repo,
        pr_number,
        token,
        anchor_mode=config["anchor_mode"],
        bot_login=config.get("bot_login"),
    )
    try:
        driver = ReviewDriver(
            host,
            get_reviewer(config),
            config,
            jira=build_jira_client(config),
            repo_name=repo,
            shadow=shadow,
            force_full=full_review,
        )
    except (ValueError, FileNotFoundError) as e:
        raise click.ClickException(str(e))
    try:
        summary = driver.run()
    except ReviewAbortedError as e:
        raise click.ClickException(str(e))
    _print_summary(summary)
