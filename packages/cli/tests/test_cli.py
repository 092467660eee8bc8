"""Tests for the CLI entry point."""

import subprocess
from unittest.mock import MagicMock, patch

from click.testing import CliRunner

from prwarden_cli.cli import main
from prwarden_core.config import DEFAULT_CONFIG
from prwarden_core.reviewer import ReviewAbortedError, ReviewSummary


def _make_config(github_token="tok", model="anthropic", anthropic_key="ant", openai_key=None, **overrides):
    return {
        **DEFAULT_CONFIG,
        "github_token": github_token,
        "model": model,
        "anthropic_api_key": anthropic_key,
        "openai_api_key": openai_key,
        **overrides,
    }


def _summary(**overrides):
    fields = {"repo": "owner/repo", "pr_number": 42, "head_sha": "abc", "skipped": False}
    fields.update(overrides)
    return ReviewSummary(**fields)


def _patch_common(mocker, config=None, token="tok"):
    """Patch config loading and token resolution for most tests."""
    cfg = config or _make_config()
    load = mocker.patch("prwarden_core.config.load_config", return_value=cfg)
    mocker.patch("prwarden_cli.auth.resolve_github_token", return_value=token)
    return cfg, load


def _patch_review(mocker, summary=None):
    """Patch everything the review command talks to; return the ReviewDriver mock."""
    mocker.patch("prwarden_cli.commands.review.get_repo", return_value=MagicMock())
    mocker.patch("prwarden_cli.commands.review.get_reviewer", return_value=MagicMock())
    mocker.patch("prwarden_cli.commands.review.GitHubHost")
    driver_cls = mocker.patch("prwarden_cli.commands.review.ReviewDriver")
    driver_cls.return_value.run.return_value = summary or _summary()
    return driver_cls


class TestCLIValidation:
    def test_missing_github_token(self, mocker):
        _patch_common(mocker, config=_make_config(github_token=None), token=None)

        result = CliRunner().invoke(main, ["review", "--repo", "owner/repo", "--pr", "1"])
        assert result.exit_code != 0
        assert "token" in result.output.lower() or "GITHUB_TOKEN" in result.output

    def test_missing_anthropic_key(self, mocker):
        _patch_common(mocker, config=_make_config(model="anthropic", anthropic_key=None))

        result = CliRunner().invoke(main, ["review", "--repo", "owner/repo", "--pr", "1"])
        assert result.exit_code != 0
        assert "ANTHROPIC_API_KEY" in result.output

    def test_missing_openai_key(self, mocker):
        _patch_common(mocker, config=_make_config(model="openai", anthropic_key=None, openai_key=None))

        result = CliRunner().invoke(main, ["review", "--repo", "owner/repo", "--pr", "1"])
        assert result.exit_code != 0
        assert "OPENAI_API_KEY" in result.output

    def test_invalid_config_value(self, mocker):
        _patch_common(mocker, config=_make_config(resolution_action="archive"))

        result = CliRunner().invoke(main, ["review", "--repo", "owner/repo", "--pr", "1"])
        assert result.exit_code != 0
        assert "resolution_action" in result.output

    def test_config_path_option_used(self, mocker):
        _, load = _patch_common(mocker)
        _patch_review(mocker)

        CliRunner().invoke(main, ["--config", "ci/prwarden.yml", "review", "--repo", "owner/repo", "--pr", "1"])

        assert load.call_args.args[0] == "ci/prwarden.yml"


class TestCLIRunReview:
    def test_builds_host_and_driver(self, mocker):
        _patch_common(mocker)
        driver_cls = _patch_review(mocker)
        host_cls = mocker.patch("prwarden_cli.commands.review.GitHubHost")

        result = CliRunner().invoke(main, ["review", "--repo", "owner/repo", "--pr", "42"])

        assert result.exit_code == 0
        assert host_cls.call_args.args[1] == 42
        assert host_cls.call_args.kwargs["anchor_mode"] == "position"
        driver_cls.return_value.run.assert_called_once()
        kwargs = driver_cls.call_args.kwargs
        assert kwargs["repo_name"] == "owner/repo"
        assert kwargs["shadow"] is False
        assert kwargs["force_full"] is False

    def test_shadow_flag_passed_through(self, mocker):
        _patch_common(mocker)
        driver_cls = _patch_review(mocker)

        CliRunner().invoke(main, ["review", "--repo", "owner/repo", "--pr", "1", "--shadow"])

        assert driver_cls.call_args.kwargs["shadow"] is True

    def test_full_review_flag_passed_through(self, mocker):
        _patch_common(mocker)
        driver_cls = _patch_review(mocker)

        CliRunner().invoke(main, ["review", "--repo", "owner/repo", "--pr", "1", "--full-review"])

        assert driver_cls.call_args.kwargs["force_full"] is True

    def test_overrides_forwarded_to_config(self, mocker):
        _, load = _patch_common(mocker)
        _patch_review(mocker)

        CliRunner().invoke(
            main,
            ["review", "--repo", "owner/repo", "--pr", "1", "--model", "openai", "--granularity", "hunk"],
        )

        overrides = load.call_args.kwargs["cli_overrides"]
        assert overrides["model"] == "openai"
        assert overrides["granularity"] == "hunk"

    def test_summary_printed(self, mocker):
        _patch_common(mocker)
        _patch_review(mocker, summary=_summary(published_comments=2, verdict="REQUEST_CHANGES"))

        result = CliRunner().invoke(main, ["review", "--repo", "owner/repo", "--pr", "1"])

        assert "2 comment(s) posted" in result.output
        assert "REQUEST_CHANGES" in result.output

    def test_skipped_run_reported(self, mocker):
        _patch_common(mocker)
        _patch_review(mocker, summary=_summary(skipped=True))

        result = CliRunner().invoke(main, ["review", "--repo", "owner/repo", "--pr", "1"])

        assert "skipped" in result.output.lower()

    def test_aborted_review_exits_nonzero(self, mocker):
        _patch_common(mocker)
        driver_cls = _patch_review(mocker)
        driver_cls.return_value.run.side_effect = ReviewAbortedError("Could not fetch PR #1: 404")

        result = CliRunner().invoke(main, ["review", "--repo", "owner/repo", "--pr", "1"])

        assert result.exit_code != 0
        assert "Could not fetch PR #1" in result.output

    def test_missing_guidelines_file_exits_nonzero(self, mocker):
        _patch_common(mocker)
        driver_cls = _patch_review(mocker)
        driver_cls.side_effect = FileNotFoundError("Guidelines file not found: rules.md")

        result = CliRunner().invoke(main, ["review", "--repo", "owner/repo", "--pr", "1"])

        assert result.exit_code != 0
        assert "rules.md" in result.output


class TestCLIInteractive:
    def test_lists_open_prs(self, mocker):
        _patch_common(mocker)
        driver_cls = _patch_review(mocker)
        open_pr = MagicMock(number=5, title="Add retries")
        mocker.patch("prwarden_cli.commands.review.get_pull_requests", return_value=[open_pr])
        host_cls = mocker.patch("prwarden_cli.commands.review.GitHubHost")

        result = CliRunner().invoke(main, ["review", "--repo", "owner/repo"], input="5\n")

        assert "#5" in result.output
        assert "Add retries" in result.output
        assert host_cls.call_args.args[1] == 5
        driver_cls.return_value.run.assert_called_once()

    def test_no_open_prs_exits_early(self, mocker):
        _patch_common(mocker)
        driver_cls = _patch_review(mocker)
        mocker.patch("prwarden_cli.commands.review.get_pull_requests", return_value=[])

        result = CliRunner().invoke(main, ["review", "--repo", "owner/repo"])

        assert "No open pull requests" in result.output
        driver_cls.assert_not_called()


class TestSummarizeCommand:
    def test_runs_summary(self, mocker):
        _patch_common(mocker, config=_make_config(summary_shortcode="[AI-PR-SUMMARY]"))
        mocker.patch("prwarden_cli.commands.summarize.get_repo", return_value=MagicMock())
        mocker.patch("prwarden_cli.commands.summarize.get_reviewer", return_value=MagicMock())
        host_cls = mocker.patch("prwarden_cli.commands.summarize.GitHubHost")
        run = mocker.patch("prwarden_cli.commands.summarize.summarize_pull_request", return_value=True)

        result = CliRunner().invoke(main, ["summarize", "--repo", "owner/repo", "--pr", "9"])

        assert result.exit_code == 0
        assert host_cls.call_args.args[1] == 9
        assert run.call_args.args[0] is host_cls.return_value
        assert run.call_args.args[2] == "[AI-PR-SUMMARY]"

    def test_requires_pr(self, mocker):
        _patch_common(mocker)
        result = CliRunner().invoke(main, ["summarize", "--repo", "owner/repo"])
        assert result.exit_code != 0


class TestResolveGithubToken:
    def test_returns_env_var_when_set(self, monkeypatch):
        from prwarden_cli.auth import resolve_github_token

        monkeypatch.setenv("GITHUB_TOKEN", "env-token")
        assert resolve_github_token() == "env-token"

    def test_falls_back_to_gh_cli(self, monkeypatch):
        from prwarden_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.delenv("GH_TOKEN", raising=False)
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="gh-token\n")
            result = resolve_github_token()
        assert result == "gh-token"
        assert mock_run.call_args.args[0] == ["gh", "auth", "token"]

    def test_returns_none_when_gh_not_installed(self, monkeypatch):
        from prwarden_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.delenv("GH_TOKEN", raising=False)
        with patch("subprocess.run", side_effect=FileNotFoundError):
            assert resolve_github_token() is None

    def test_returns_none_when_gh_times_out(self, monkeypatch):
        from prwarden_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.delenv("GH_TOKEN", raising=False)
        with patch("subprocess.run", side_effect=subprocess.TimeoutExpired(cmd="gh", timeout=5)):
            assert resolve_github_token() is None

    def test_returns_none_when_gh_returns_empty(self, monkeypatch):
        from prwarden_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.delenv("GH_TOKEN", raising=False)
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="   ")
            assert resolve_github_token() is None

    def test_gh_token_env_var(self, monkeypatch):
        from prwarden_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.setenv("GH_TOKEN", "gh-env-token")
        with patch("subprocess.run") as mock_run:
            assert resolve_github_token() == "gh-env-token"
        mock_run.assert_not_called()

    def test_returns_none_when_gh_returns_error(self, monkeypatch):
        from prwarden_cli.auth import resolve_github_token

        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.delenv("GH_TOKEN", raising=False)
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=1, stdout="")
            assert resolve_github_token() is None
