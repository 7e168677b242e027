"""Vouch CLI — Typer + Rich terminal interface.

Commands: run, arbitrate, decide, escalations (list/show/respond/metrics),
audit (list/show), config (show).
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from vouch import __version__
from vouch.errors import AlreadyAnswered, EscalationNotFound
from vouch.schemas.escalation import EscalationStatus
from vouch.schemas.pipeline import VouchConfig

console = Console()

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="vouch",
    help="Trust pipeline for generative workers: retry, gate, arbitrate, escalate.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

escalations_app = typer.Typer(
    name="escalations",
    help="Inspect and answer human escalations.",
    no_args_is_help=True,
)
app.add_typer(escalations_app, name="escalations")

audit_app = typer.Typer(
    name="audit",
    help="Read run audit trails.",
    no_args_is_help=True,
)
app.add_typer(audit_app, name="audit")

config_app = typer.Typer(
    name="config",
    help="Show pipeline configuration.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")

# Set by the app callback; commands read it through _load_config()
_state: dict[str, Path | None] = {"config_path": None}


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"vouch {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log pipeline activity."),
    config: Path = typer.Option(None, "--config", "-c", help="Path to a defaults.toml"),
) -> None:
    """Vouch — trust pipeline for generative workers."""
    _state["config_path"] = config
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )


# ── Helpers ──────────────────────────────────────────────────────


def _load_config() -> VouchConfig:
    """Load the pipeline config, exit on error."""
    from vouch.providers.registry import load_config

    try:
        return load_config(_state["config_path"])
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None


def _read_json(path: Path) -> dict:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Cannot read {path}:[/red] {e}")
        raise typer.Exit(1) from None


async def _with_queue(config: VouchConfig, action):
    from vouch.escalation.queue import EscalationQueue

    queue = await EscalationQueue.open(
        config.escalation_db_path, poll_interval=config.poll_interval
    )
    try:
        return await action(queue)
    finally:
        await queue.close()


def _decision_text(decision: str) -> Text:
    style = {"pass": "green", "fail": "red", "escalate": "yellow"}.get(decision, "white")
    return Text(decision.upper(), style=f"bold {style}")


# ── run ─────────────────────────────────────────────────────────


@app.command()
def run(
    context_file: Path = typer.Argument(..., help="JSON file with the story context"),
    root: Path = typer.Option(Path("."), "--root", "-r", help="Project root for applied files"),
    models: Path = typer.Option(None, "--models", help="Path to a models.toml"),
    no_review: bool = typer.Option(
        False, "--no-review", help="Skip independent review and arbitration"
    ),
) -> None:
    """Run one story through the trust pipeline."""
    from vouch.apply.writer import FileApplier
    from vouch.persistence.audit import AuditLog
    from vouch.pipeline.orchestrator import PipelineOrchestrator
    from vouch.pipeline.workers import WorkerRegistry
    from vouch.providers.registry import build_worker_factories, load_models
    from vouch.schemas.context import StoryContext
    from vouch.schemas.pipeline import WorkerRole

    config = _load_config()
    try:
        context = StoryContext.model_validate(_read_json(context_file))
        factories = build_worker_factories(config, load_models(models))
    except (FileNotFoundError, ValueError, ValidationError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    if no_review:
        factories.pop(WorkerRole.INDEPENDENT_REVIEWER, None)
    if WorkerRole.GENERATOR not in factories:
        console.print("[red]Error:[/red] no generator model configured")
        raise typer.Exit(1)

    async def _run(queue):
        orchestrator = PipelineOrchestrator(
            config,
            WorkerRegistry(factories),
            queue=queue,
            applier=FileApplier(root),
            audit=AuditLog(config.audit_dir),
        )
        return await orchestrator.run(context)

    result = asyncio.run(_with_queue(config, _run))

    table = Table(title=f"Run {result.run_id}", show_header=False, show_lines=True)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Status", Text(
        result.status.upper(), style="green" if result.success else "bright_red"
    ))
    table.add_row("Last stage", result.stage)
    if result.verdict:
        table.add_row("Verdict", _decision_text(result.verdict.decision))
        table.add_row("Rationale", result.verdict.rationale)
    if result.escalation_id:
        table.add_row("Escalation", result.escalation_id)
    if result.apply_result:
        table.add_row("Applied", ", ".join(result.apply_result.succeeded) or "-")
    table.add_row("Attempts", str(result.metrics.invocation_attempts))
    table.add_row("Duration", f"{result.metrics.total_duration:.1f}s")
    if result.metrics.bottlenecks:
        table.add_row("Bottlenecks", ", ".join(result.metrics.bottlenecks))
    console.print(table)

    if result.failure:
        console.print(Panel(
            result.failure.message,
            title=f"[bright_red]{result.failure.kind}[/bright_red]",
            border_style="red",
        ))
        if result.gate and not result.gate.passed:
            for issue in result.gate.issues:
                console.print(f"  [red]✗[/red] {issue}")
        raise typer.Exit(1)


# ── arbitrate ───────────────────────────────────────────────────


@app.command()
def arbitrate(
    self_file: Path = typer.Argument(..., help="JSON self-assessment"),
    independent_file: Path = typer.Argument(..., help="JSON independent assessment"),
    threshold: float = typer.Option(
        None, "--threshold", "-t", min=0.0, max=1.0,
        help="Confidence threshold (default from config)",
    ),
) -> None:
    """Arbitrate two assessments and print the verdict."""
    from vouch.arbitration.engine import (
        arbitrate as run_arbitration,
        format_verdict_report,
        summarize_reviews,
    )
    from vouch.schemas.review import IndependentAssessment, SelfAssessment

    if threshold is None:
        threshold = _load_config().confidence_threshold

    try:
        self_assessment = SelfAssessment.model_validate(_read_json(self_file))
        independent = IndependentAssessment.model_validate(_read_json(independent_file))
    except ValidationError as e:
        console.print(f"[red]Invalid assessment:[/red] {e}")
        raise typer.Exit(1) from None

    verdict = run_arbitration(self_assessment, independent, threshold)
    summary = summarize_reviews(self_assessment, independent)
    console.print(Panel(
        format_verdict_report(verdict, summary),
        title=_decision_text(verdict.decision),
        subtitle=f"rule: {verdict.rule}",
    ))


# ── decide ──────────────────────────────────────────────────────


@app.command()
def decide(
    question: str = typer.Argument(..., help="Question to decide"),
    context_file: Path = typer.Option(
        None, "--context", help="JSON file with the decision context"
    ),
    models: Path = typer.Option(None, "--models", help="Path to a models.toml"),
    escalate: bool = typer.Option(
        False, "--escalate", help="Ask a human when confidence is too low and wait"
    ),
) -> None:
    """Answer a question autonomously, escalating to a human if asked."""
    from vouch.decision.engine import DecisionEngine, decide_or_escalate
    from vouch.errors import EscalationTimeout
    from vouch.providers.registry import build_worker_factories, load_models

    config = _load_config()
    context = _read_json(context_file) if context_file else {}
    if not isinstance(context, dict):
        console.print("[red]Error:[/red] decision context must be a JSON object")
        raise typer.Exit(1)
    try:
        factories = build_worker_factories(config, load_models(models))
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    async def _decide(queue):
        engine = DecisionEngine.from_config(config, factories)
        try:
            if queue is None:
                return await engine.attempt_autonomous_decision(question, context)
            return await decide_or_escalate(
                engine, queue, question, context,
                workflow_id=config.workflow_id,
                step_id="decide",
                timeout=config.escalation_timeout,
            )
        finally:
            await engine.aclose()

    try:
        if escalate:
            decision = asyncio.run(_with_queue(config, _decide))
        else:
            decision = asyncio.run(_decide(None))
    except EscalationTimeout as e:
        console.print(f"[yellow]{e.message}[/yellow]")
        raise typer.Exit(1) from None

    below = decision.confidence < config.escalation_threshold
    table = Table(title="Decision", show_header=False, show_lines=True)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Question", decision.question)
    table.add_row("Answer", "-" if decision.value is None else str(decision.value)[:500])
    table.add_row("Confidence", Text(
        f"{decision.confidence:.2f}", style="yellow" if below else "green"
    ))
    table.add_row("Source", decision.source)
    table.add_row("Reasoning", decision.reasoning)
    console.print(table)


# ── escalations ─────────────────────────────────────────────────


@escalations_app.command("list")
def escalations_list(
    status: EscalationStatus = typer.Option(None, "--status", "-s", help="Filter by status"),
    workflow: str = typer.Option(None, "--workflow", "-w", help="Filter by workflow id"),
    limit: int = typer.Option(50, "--limit", "-n", help="Max escalations to show"),
) -> None:
    """Show escalations, oldest first."""
    config = _load_config()
    records = asyncio.run(_with_queue(
        config, lambda q: q.list(status=status, workflow_id=workflow, limit=limit)
    ))

    if not records:
        console.print("[dim]No escalations found.[/dim]")
        return

    table = Table(title=f"Escalations ({len(records)} shown)")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Workflow", style="dim")
    table.add_column("Question", max_width=50)
    table.add_column("Confidence", justify="right")
    table.add_column("Status")
    table.add_column("Created", style="dim")

    for r in records:
        status_text = (
            Text("PENDING", style="yellow")
            if r.status == EscalationStatus.PENDING
            else Text("ANSWERED", style="green")
        )
        table.add_row(
            r.id,
            r.workflow_id,
            r.question[:50],
            f"{r.confidence:.2f}",
            status_text,
            r.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@escalations_app.command("show")
def escalations_show(
    escalation_id: str = typer.Argument(..., help="Escalation id"),
) -> None:
    """Show one escalation in full."""
    config = _load_config()
    try:
        record = asyncio.run(_with_queue(config, lambda q: q.get(escalation_id)))
    except EscalationNotFound as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1) from None

    table = Table(title=f"Escalation {record.id}", show_header=False, show_lines=True)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Workflow", f"{record.workflow_id} / {record.step_id or '-'}")
    table.add_row("Question", record.question)
    table.add_row("Confidence", f"{record.confidence:.2f}")
    table.add_row("Status", record.status.upper())
    table.add_row("Created", record.created_at.isoformat())
    if record.answered_at:
        table.add_row("Answer", json.dumps(record.answer))
        table.add_row("Answered", record.answered_at.isoformat())
    console.print(table)

    if record.ai_reasoning:
        console.print(Panel(record.ai_reasoning, title="AI reasoning", border_style="dim"))
    if record.context:
        console.print(Panel(json.dumps(record.context, indent=2), title="Context"))


@escalations_app.command("respond")
def escalations_respond(
    escalation_id: str = typer.Argument(..., help="Escalation id"),
    answer: str = typer.Argument(..., help="Your answer (e.g. approve / reject)"),
    as_json: bool = typer.Option(False, "--json", help="Parse the answer as JSON"),
) -> None:
    """Answer a pending escalation."""
    value = answer
    if as_json:
        try:
            value = json.loads(answer)
        except json.JSONDecodeError as e:
            console.print(f"[red]Answer is not valid JSON:[/red] {e}")
            raise typer.Exit(1) from None

    config = _load_config()
    try:
        asyncio.run(_with_queue(config, lambda q: q.resolve(escalation_id, value)))
    except (EscalationNotFound, AlreadyAnswered) as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1) from None

    console.print(f"[green]✓[/green] Answered {escalation_id}")


@escalations_app.command("metrics")
def escalations_metrics() -> None:
    """Show escalation counts and resolution times."""
    config = _load_config()
    metrics = asyncio.run(_with_queue(config, lambda q: q.metrics()))

    table = Table(title="Escalation Metrics", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Total", str(metrics.total))
    table.add_row("Pending", str(metrics.pending))
    table.add_row("Answered", str(metrics.answered))
    table.add_row("Avg resolution", f"{metrics.average_resolution_seconds:.1f}s")
    console.print(table)

    if metrics.by_workflow:
        wf_table = Table(title="By Workflow")
        wf_table.add_column("Workflow", style="cyan")
        wf_table.add_column("Total", justify="right")
        wf_table.add_column("Answered", justify="right")
        for workflow_id, stats in sorted(metrics.by_workflow.items()):
            wf_table.add_row(workflow_id, str(stats.total), str(stats.answered))
        console.print(wf_table)


# ── audit ───────────────────────────────────────────────────────


@audit_app.command("list")
def audit_list() -> None:
    """List runs with an audit trail, most recent first."""
    from vouch.persistence.audit import AuditLog

    runs = AuditLog(_load_config().audit_dir).runs()
    if not runs:
        console.print("[dim]No audit trails found.[/dim]")
        return
    for run_id in runs:
        console.print(run_id)


@audit_app.command("show")
def audit_show(
    run_id: str = typer.Argument(..., help="Run id"),
) -> None:
    """Show a run's audit trail."""
    from vouch.persistence.audit import AuditLog

    try:
        entries = AuditLog(_load_config().audit_dir).read(run_id)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from None

    if not entries:
        console.print(f"[dim]No audit trail for {run_id}.[/dim]")
        return

    table = Table(title=f"Audit {run_id}")
    table.add_column("Time", style="dim", no_wrap=True)
    table.add_column("Kind", style="cyan")
    table.add_column("Stage", style="dim")
    table.add_column("Payload", max_width=80)
    for entry in entries:
        table.add_row(
            entry.timestamp.strftime("%H:%M:%S"),
            entry.kind,
            entry.stage or "-",
            json.dumps(entry.payload)[:200],
        )
    console.print(table)


# ── config ──────────────────────────────────────────────────────


@config_app.command("show")
def config_show() -> None:
    """Show the effective pipeline configuration."""
    config = _load_config()

    table = Table(title="Pipeline Configuration", show_header=False, show_lines=True)
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("Gate mode", config.gate_mode)
    table.add_row("Confidence threshold", f"{config.confidence_threshold:.2f}")
    table.add_row("Escalation threshold", f"{config.escalation_threshold:.2f}")
    table.add_row(
        "Escalation timeout",
        f"{config.escalation_timeout:.0f}s" if config.escalation_timeout else "none",
    )
    table.add_row(
        "Retry",
        f"{config.retry.max_attempts} attempts, backoff "
        + ", ".join(f"{d:g}s" for d in config.retry.schedule()),
    )
    table.add_row("Run timeout", f"{config.run_timeout:.0f}s")
    table.add_row("Stage / total budget", f"{config.stage_budget:.0f}s / {config.total_budget:.0f}s")
    table.add_row("Max context tokens", f"{config.max_context_tokens:,}")
    table.add_row("Escalation DB", config.escalation_db_path)
    table.add_row("Audit dir", config.audit_dir)
    table.add_row("Onboarding docs", config.onboarding_dir or "none")
    for role, key in config.workers.items():
        table.add_row(f"Worker: {role}", key)
    console.print(table)
