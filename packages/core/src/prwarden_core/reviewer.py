"""Review driver — one reconciliation pass per pull-request event.

    START → SKIP_IF_HAS_COMMENTS → FILTER_FILES → PER_FILE_RECONCILE
          → GENERATE_FINDINGS → DEDUP_FILTER → PUBLISH → VERDICT → END

A PR that already carries review comments jumps straight from
SKIP_IF_HAS_COMMENTS to VERDICT, so repeated pushes don't re-review it (pass
``force_full`` to review it anyway). Every other transition is unconditional.

Everything a run learns lives in a RunContext created at START and thrown
away at END; GitHub is re-read at the start of every run.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field, replace
from enum import Enum

from rich.console import Console

from prwarden_core.comments import (
    RESOLVED_REPLY,
    CorrelatedComment,
    Finding,
    ReviewComment,
    correlate,
    is_sentinel,
    normalize_summary,
    open_comments,
    summaries,
)
from prwarden_core.config import load_guidelines
from prwarden_core.context import PRContext
from prwarden_core.diff import DELETED, DiffFile, DiffParseError, parse_diff, parse_patch
from prwarden_core.gh.pull_request import DiffTooLargeError
from prwarden_core.jira import resolve_task
from prwarden_core.oracles import (
    ApprovalChecker,
    Deduplicator,
    FindingGenerator,
    PrSummarizer,
    Resolution,
    ResolutionChecker,
    most_severe_verdict,
)
from prwarden_core.providers.anthropic import AnthropicReviewer
from prwarden_core.providers.openai import OpenAIReviewer
from prwarden_core.utils.filters import filter_reviewable

console = Console()
logger = logging.getLogger(__name__)

APPROVE_BODY = (
    "\n"
    "Great job! ✅ The PR looks solid with no security or performance issues.\n"
    "\n"
    "Please make sure to resolve any remaining comments if any. **Approved** :thumbsup:"
)


class ReviewAbortedError(RuntimeError):
    """A fatal error: the run cannot continue (PR or diff unavailable)."""


class ReviewState(str, Enum):
    START = "START"
    SKIP_IF_HAS_COMMENTS = "SKIP_IF_HAS_COMMENTS"
    FILTER_FILES = "FILTER_FILES"
    PER_FILE_RECONCILE = "PER_FILE_RECONCILE"
    GENERATE_FINDINGS = "GENERATE_FINDINGS"
    DEDUP_FILTER = "DEDUP_FILTER"
    PUBLISH = "PUBLISH"
    VERDICT = "VERDICT"
    END = "END"


@dataclass
class RunContext:
    pr: PRContext
    comments: list[ReviewComment] = field(default_factory=list)
    files: list[DiffFile] = field(default_factory=list)
    reviewable: list[DiffFile] = field(default_factory=list)
    retracted_ids: set[int] = field(default_factory=set)
    resolved_comments: int = 0
    candidates: list[Finding] = field(default_factory=list)
    accepted: list[Finding] = field(default_factory=list)
    published: list[Finding] = field(default_factory=list)
    verdict_recommendations: list[str] = field(default_factory=list)
    verdict: str | None = None
    skipped: bool = False
    states: list[ReviewState] = field(default_factory=list)
    duplicates_dropped: int = 0
    sentinels_dropped: int = 0
    failed_units: int = 0
    failed_writes: int = 0


@dataclass
class ReviewSummary:
    """What one ReviewDriver.run did, for the CLI to report."""

    repo: str
    pr_number: int
    head_sha: str
    skipped: bool
    states: list[str] = field(default_factory=list)
    reviewed_files: list[str] = field(default_factory=list)
    resolved_comments: int = 0
    published_comments: int = 0
    duplicates_dropped: int = 0
    sentinels_dropped: int = 0
    failed_units: int = 0
    failed_writes: int = 0
    verdict: str | None = None  # "APPROVE" | "COMMENT" | "REQUEST_CHANGES" | None


def get_reviewer(config: dict):
    model = config["model"]
    options = {
        "model": config.get("model_name"),
        "temperature": config.get("temperature"),
        "max_tokens": config.get("max_tokens"),
        "timeout": float(config.get("unit_timeout_seconds", 300)),
    }
    if model == "anthropic":
        return AnthropicReviewer(api_key=config["anthropic_api_key"], **options)
    if model == "openai":
        return OpenAIReviewer(api_key=config["openai_api_key"], **options)
    raise ValueError(f"Unknown model provider: {model!r}. Choose 'anthropic' or 'openai'.")


def _build_verdict_body(ctx: RunContext, event: str) -> str:
    """Build the review body posted with a recommended (non-approval) verdict."""
    per_file: dict[str, int] = {}
    for finding in ctx.published:
        per_file[finding.path] = per_file.get(finding.path, 0) + 1

    if event == "REQUEST_CHANGES":
        verdict = "Changes requested — see the inline comments."
    elif event == "COMMENT":
        verdict = "Suggestions only — see the inline comments."
    else:
        verdict = "No blocking issues found."

    lines = ["## Review summary\n", f"> {verdict}\n"]
    lines.append(
        f"**{len(ctx.reviewable)}** file(s) reviewed · **{len(ctx.published)}** comment(s) posted"
        + (f" · **{ctx.resolved_comments}** earlier comment(s) resolved" if ctx.resolved_comments else "")
        + "\n"
    )
    if per_file:
        lines.append("| File | Comments |")
        lines.append("|------|:--------:|")
        for path in sorted(per_file, key=lambda p: per_file[p], reverse=True):
            lines.append(f"| `{path}` | {per_file[path]} |")
    return "\n".join(lines)


def print_shadow_findings(findings: list[Finding]) -> None:
    """Print findings to the terminal without posting to GitHub."""
    if not findings:
        console.print("[yellow]Shadow mode: no comments generated.[/yellow]")
        return
    console.print(f"\n[bold]Shadow review — {len(findings)} comment(s) (not posted)[/bold]\n")
    for f in findings:
        line = f"line [bold]{f.line}[/bold]  " if f.line is not None else ""
        console.print(f"[bold cyan]{f.path}[/bold cyan]  {line}position [bold]{f.position}[/bold]  [dim]{f.side}[/dim]")
        console.print(f"  {f.body.format()}")
        console.print()


class ReviewDriver:
    def __init__(
        self,
        host,
        reviewer,
        config: dict,
        jira=None,
        repo_name: str = "",
        shadow: bool = False,
        force_full: bool = False,
    ):
        self.host = host
        self.config = config
        self.jira = jira
        self.repo_name = repo_name
        self.shadow = shadow
        self.force_full = force_full
        self.max_concurrency = max(1, int(config.get("max_concurrency", 4)))
        self.unit_timeout = float(config.get("unit_timeout_seconds", 300))

        self.resolution_checker = ResolutionChecker(reviewer)
        self.deduplicator = Deduplicator(reviewer)
        self.approval_checker = ApprovalChecker(reviewer)
        self.finding_generator = FindingGenerator(
            reviewer,
            guidelines=load_guidelines(config),
            max_chars=config.get("max_chars_per_file", 20000),
        )

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def run(self) -> ReviewSummary:
        ctx: RunContext | None = None
        try:
            ctx = self._start()
            if self._skip_if_has_comments(ctx):
                ctx.skipped = True
            else:
                self._filter_files(ctx)
                self._reconcile(ctx)
                self._generate_findings(ctx)
                self._dedup_filter(ctx)
                self._publish(ctx)
            self._verdict(ctx)
            self._enter(ctx, ReviewState.END)
        except Exception as e:
            state = ctx.states[-1].value if ctx and ctx.states else ReviewState.START.value
            logger.error("Review of PR #%s aborted in %s: %s", self.host.pr_number, state, e)
            raise
        return self._summarize(ctx)

    # ------------------------------------------------------------------ #
    # States                                                               #
    # ------------------------------------------------------------------ #

    def _enter(self, ctx: RunContext, state: ReviewState) -> None:
        ctx.states.append(state)
        logger.debug("PR #%d → %s", ctx.pr.number, state.value)

    def _start(self) -> RunContext:
        try:
            pr = self.host.fetch_pull_request()
        except Exception as e:
            raise ReviewAbortedError(f"Could not fetch PR #{self.host.pr_number}: {e}") from e

        ctx = RunContext(pr=pr)
        self._enter(ctx, ReviewState.START)
        console.print(f"Reviewing PR #{pr.number}: [bold]{pr.title}[/bold] @ {pr.head_sha[:7]}")

        task = resolve_task(self.jira, pr)
        if task is not None:
            ctx.pr = replace(pr, task=task)
            console.print(f"[dim]Linked task {task.key}: {task.summary}[/dim]")

        try:
            ctx.comments = open_comments(self.host.fetch_existing_comments())
        except Exception as e:
            raise ReviewAbortedError(f"Could not fetch review comments for PR #{pr.number}: {e}") from e
        return ctx

    def _skip_if_has_comments(self, ctx: RunContext) -> bool:
        self._enter(ctx, ReviewState.SKIP_IF_HAS_COMMENTS)
        if ctx.pr.existing_comment_count > 0 and not self.force_full:
            console.print(
                f"[yellow]Pull request already has {ctx.pr.existing_comment_count} review comment(s). "
                "Skipping the review.[/yellow]"
            )
            return True
        return False

    def _filter_files(self, ctx: RunContext) -> None:
        self._enter(ctx, ReviewState.FILTER_FILES)
        try:
            files = parse_diff(self.host.fetch_unified_diff())
        except DiffTooLargeError:
            logger.info("Unified diff too large for the API; building it from per-file patches.")
            files = self._files_from_patches()
        except Exception as e:
            raise ReviewAbortedError(f"Could not fetch the diff for PR #{ctx.pr.number}: {e}") from e

        if not files:
            raise ReviewAbortedError(f"No diff content could be parsed for PR #{ctx.pr.number}.")

        ctx.files = files
        ctx.reviewable = filter_reviewable(
            files,
            self.config.get("include_extensions", []),
            self.config.get("exclude_extensions", []),
            self.config.get("include_paths", []),
            self.config.get("exclude_paths", []),
        )
        reviewable = {f.path for f in ctx.reviewable}
        for f in files:
            if f.path not in reviewable:
                console.print(f"  Skipping: {f.path}")
        console.print(f"{len(ctx.reviewable)} of {len(files)} changed file(s) to review.")

    def _files_from_patches(self) -> list[DiffFile]:
        try:
            changed = self.host.fetch_changed_files()
        except Exception as e:
            raise ReviewAbortedError(f"Could not fetch changed files for PR #{self.host.pr_number}: {e}") from e
        files = []
        for cf in changed:
            if not cf.patch:
                logger.debug("No patch for %s (binary or too large); skipping.", cf.path)
                continue
            try:
                files.append(parse_patch(cf.path, cf.patch, cf.status, cf.previous_path))
            except DiffParseError as e:
                logger.warning("Skipping %s: %s", cf.path, e)
        return files

    def _reconcile(self, ctx: RunContext) -> None:
        self._enter(ctx, ReviewState.PER_FILE_RECONCILE)
        correlated = correlate(
            ctx.comments,
            ctx.reviewable,
            include_human=bool(self.config.get("reconcile_human_comments", False)),
        )
        units = [cc for path in correlated for cc in correlated[path]]
        if not units:
            return

        results = self._run_units(
            ctx,
            "Resolution check",
            self._check_resolution,
            units,
            lambda cc: f"comment {cc.comment.id} on {cc.comment.path}",
        )
        resolved = [cc for cc, outcome in results if outcome is Resolution.RESOLVED]
        ctx.resolved_comments = len(resolved)
        if not resolved:
            return
        console.print(f"{len(resolved)} earlier comment(s) resolved.")

        if self.config.get("resolution_action", "delete") == "reply":
            for cc in resolved:
                self._write(
                    ctx,
                    f"reply to comment {cc.comment.id}",
                    self.host.reply_to_comment,
                    cc.comment.id,
                    RESOLVED_REPLY,
                )
                ctx.retracted_ids.add(cc.comment.id)
            return

        # A resolved reply takes its thread parent with it; two replies in the
        # same thread must not delete the parent twice.
        targets: list[int] = []
        for cc in resolved:
            for comment_id in (cc.comment.id, cc.comment.in_reply_to_id):
                if comment_id is not None and comment_id not in targets:
                    targets.append(comment_id)
        for comment_id in targets:
            if self._write(ctx, f"delete comment {comment_id}", self.host.delete_comment, comment_id):
                ctx.retracted_ids.add(comment_id)

    def _generate_findings(self, ctx: RunContext) -> None:
        self._enter(ctx, ReviewState.GENERATE_FINDINGS)
        contents = {f.path: self._file_content(ctx, f) for f in ctx.reviewable if f.hunks}
        if self.config.get("granularity", "file") == "hunk":
            units = [(f, hunk) for f in ctx.reviewable for hunk in f.hunks]
        else:
            units = [(f, None) for f in ctx.reviewable if f.hunks]

        results = self._run_units(
            ctx,
            "Review",
            lambda unit: self.finding_generator.generate(ctx.pr, unit[0], unit[1], contents.get(unit[0].path, "")),
            units,
            lambda unit: unit[0].path if unit[1] is None else f"{unit[0].path} {unit[1].header}",
        )
        for (diff_file, _), batch in results:
            console.print(f"  {diff_file.path}: {len(batch.findings)} finding(s).")
            ctx.candidates.extend(batch.findings)
            if batch.verdict is not None:
                ctx.verdict_recommendations.append(batch.verdict)

    def _dedup_filter(self, ctx: RunContext) -> None:
        self._enter(ctx, ReviewState.DEDUP_FILTER)
        # Captured once: every candidate is compared against the same set.
        snapshot = tuple(summaries(c for c in ctx.comments if c.id not in ctx.retracted_ids))

        candidates = []
        for finding in ctx.candidates:
            if is_sentinel(finding.summary):
                ctx.sentinels_dropped += 1
                logger.debug("Dropping no-issue finding on %s position %d", finding.path, finding.position)
                continue
            candidates.append(finding)

        results = self._run_units(
            ctx,
            "Duplicate check",
            lambda finding: self.deduplicator.is_duplicate(list(snapshot), finding.summary),
            candidates,
            lambda finding: f"{finding.path} position {finding.position}",
        )

        # A candidate whose check failed or timed out is kept as not duplicate.
        outcomes = dict(results)
        queued: set[tuple] = set()
        for finding in candidates:
            duplicate = outcomes.get(finding, False)
            key = (finding.path, finding.position, normalize_summary(finding.summary))
            if duplicate or key in queued:
                ctx.duplicates_dropped += 1
                logger.info("Skipping duplicate comment on %s position %d", finding.path, finding.position)
                continue
            queued.add(key)
            ctx.accepted.append(finding)

    def _publish(self, ctx: RunContext) -> None:
        self._enter(ctx, ReviewState.PUBLISH)
        if self.shadow:
            print_shadow_findings(ctx.accepted)
            return

        by_line = self.config.get("anchor_mode", "position") == "line"
        for finding in ctx.accepted:
            anchor = finding.line if by_line else finding.position
            if anchor is None:
                ctx.failed_writes += 1
                logger.warning("No line anchor for %s position %d; comment not posted.", finding.path, finding.position)
                continue
            posted = self._write(
                ctx,
                f"post comment on {finding.path} position {finding.position}",
                self.host.post_review_comment,
                finding.commit_id,
                finding.side,
                anchor,
                finding.path,
                finding.body.format(),
            )
            if posted:
                ctx.published.append(finding)
        console.print(f"{len(ctx.published)} comment(s) posted.")

    def _verdict(self, ctx: RunContext) -> None:
        self._enter(ctx, ReviewState.VERDICT)
        console.print("Checking PR approval status...")
        try:
            comments = open_comments(self.host.fetch_existing_comments())
            approved = self.approval_checker.is_approved(summaries(comments))
        except Exception as e:
            ctx.failed_units += 1
            logger.warning("Approval check failed for PR #%d; no verdict posted: %s", ctx.pr.number, e)
            return
        console.print(f"PR approval status: {approved}")

        if approved:
            event, body = "APPROVE", APPROVE_BODY
        else:
            recommendation = most_severe_verdict(ctx.verdict_recommendations)
            if recommendation is None:
                return
            event, body = recommendation, _build_verdict_body(ctx, recommendation)

        if self.shadow:
            console.print(f"[bold]Shadow mode: would post {event} review.[/bold]")
            ctx.verdict = event
            return
        if self._write(ctx, f"post {event} review", self.host.post_verdict, event, body):
            ctx.verdict = event
            console.print(f"\n[green]Review posted: {event}[/green]")

    # ------------------------------------------------------------------ #
    # Helpers                                                              #
    # ------------------------------------------------------------------ #

    def _check_resolution(self, cc: CorrelatedComment) -> Resolution:
        comment, line = cc.comment, cc.diff_line
        if line is None:
            logger.debug("Comment %d on %s is outdated; checking the whole file diff.", comment.id, comment.path)
        else:
            logger.debug("Comment %d on %s sits on %s line %s.", comment.id, comment.path, line.side, line.lineno)
        return self.resolution_checker.check_resolved(cc.snippet, cc.summary)

    def _file_content(self, ctx: RunContext, diff_file: DiffFile) -> str:
        """Fetch a file at the head commit; an empty string when it can't be read."""
        if diff_file.status == DELETED:
            return ""
        try:
            return self.host.fetch_file_content(diff_file.path, ctx.pr.head_sha)
        except Exception as e:
            logger.warning("Could not fetch content of %s; reviewing the diff alone: %s", diff_file.path, e)
            return ""

    def _write(self, ctx: RunContext, what: str, func, *args) -> bool:
        """Run one host write; a failure is logged and counted, never raised."""
        try:
            func(*args)
            return True
        except Exception as e:
            ctx.failed_writes += 1
            logger.error("Could not %s: %s", what, e)
            return False

    def _run_units(self, ctx: RunContext, label: str, func, units: list, describe) -> list[tuple]:
        """Run independent units concurrently and return ``(unit, result)`` in input order.

        A unit that raises or doesn't finish within the timeout is logged by
        name and left out of the results.

        Python threads can't be killed: a timed-out unit already running keeps
        its worker until the call returns, and the interpreter waits for it at
        exit. Provider clients are built with an SDK request timeout (see
        ``get_reviewer``) so such a unit always finishes eventually.
        """
        if not units:
            return []
        workers = min(self.max_concurrency, len(units))
        # The ceiling scales with the number of rounds the pool needs.
        timeout = self.unit_timeout * math.ceil(len(units) / workers)
        executor = ThreadPoolExecutor(max_workers=workers)
        futures = {executor.submit(func, unit): i for i, unit in enumerate(units)}
        results: dict[int, object] = {}
        try:
            for future in as_completed(futures, timeout=timeout):
                i = futures[future]
                try:
                    results[i] = future.result()
                except Exception as e:
                    ctx.failed_units += 1
                    logger.warning("%s failed for %s: %s", label, describe(units[i]), e)
        except FuturesTimeoutError:
            for future, i in futures.items():
                if not future.done():
                    future.cancel()
                    ctx.failed_units += 1
                    logger.warning("%s timed out for %s", label, describe(units[i]))
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return [(units[i], results[i]) for i in sorted(results)]

    def _summarize(self, ctx: RunContext) -> ReviewSummary:
        if ctx.failed_writes:
            console.print(f"[red]{ctx.failed_writes} GitHub write(s) failed — see the log.[/red]")
        return ReviewSummary(
            repo=self.repo_name,
            pr_number=ctx.pr.number,
            head_sha=ctx.pr.head_sha,
            skipped=ctx.skipped,
            states=[s.value for s in ctx.states],
            reviewed_files=[f.path for f in ctx.reviewable],
            resolved_comments=ctx.resolved_comments,
            published_comments=len(ctx.published),
            duplicates_dropped=ctx.duplicates_dropped,
            sentinels_dropped=ctx.sentinels_dropped,
            failed_units=ctx.failed_units,
            failed_writes=ctx.failed_writes,
            verdict=ctx.verdict,
        )


def summarize_pull_request(host, summarizer: PrSummarizer, shortcode: str) -> bool:
    """Replace ``shortcode`` in the PR description with a generated summary.

    Returns True when the description was updated.
    """
    pr = host.fetch_pull_request()
    if shortcode not in pr.description:
        console.print("No summary shortcode found in the PR description.")
        return False

    try:
        diff_text = host.fetch_unified_diff()
    except DiffTooLargeError:
        diff_text = "\n".join(f"--- {cf.path}\n{cf.patch}" for cf in host.fetch_changed_files() if cf.patch)

    summary = summarizer.summarize(pr.title, diff_text)
    if summary is None:
        logger.warning("No summary generated for PR #%d; description left unchanged.", pr.number)
        return False
    host.update_pull_request_body(pr.description.replace(shortcode, summary))
    console.print("PR summary added to the PR description.")
    return True
