"""Command line interface for dispatching and inspecting workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

import typer

from tracewire.config import TracewireConfig, load_config
from tracewire.exceptions import RemoteCallError
from tracewire.persistence import get_repository
from tracewire.service import build_monitor, build_router, build_validator

app = typer.Typer(help="CLI for tracewire workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for registered workflows")
execution_app = typer.Typer(help="Commands for workflow executions")
audit_app = typer.Typer(help="Commands for manifest audits")
trace_app = typer.Typer(help="Commands for communication traces")

app.add_typer(workflow_app, name="workflow")
app.add_typer(execution_app, name="execution")
app.add_typer(audit_app, name="audit")
app.add_typer(trace_app, name="trace")


def _config(ctx: typer.Context) -> TracewireConfig:
    return ctx.obj if isinstance(ctx.obj, TracewireConfig) else load_config()


def _echo_json(data: object) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Optional[str] = typer.Option(
        None, "--config", help="Path to a tracewire YAML config file"
    ),
    log_level: Optional[str] = typer.Option(None, help="Logging level, e.g. DEBUG"),
) -> None:
    """Tracewire CLI entry point."""
    config = load_config(config_path)
    logging.basicConfig(
        level=(log_level or config.log_level).upper(),
        format="%(asctime)s [%(levelname)-5s] [%(name)s] %(message)s",
    )
    ctx.obj = config


@workflow_app.command("list")
def workflow_list(ctx: typer.Context) -> None:
    """
    List registered workflows with their execution mode.

    Example:
        tracewire workflow list
        # Output: rules-audit    local    Rules Audit
        #         echo-test      n8n      Echo Test
    """
    router = build_router(_config(ctx))
    for wf in router.list_workflows():
        typer.echo(f"{wf.id}\t{wf.mode}\t{wf.name}")


@workflow_app.command("show")
def workflow_show(ctx: typer.Context, workflow_id: str) -> None:
    """Show the registry entry for one workflow."""
    router = build_router(_config(ctx))
    workflow = router.get_workflow(workflow_id)
    if workflow is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    _echo_json(workflow.model_dump())


@workflow_app.command("sync")
def workflow_sync(ctx: typer.Context) -> None:
    """
    Discover webhook URLs for remote workflows on the engine.

    Example:
        tracewire workflow sync
    """
    router = build_router(_config(ctx))
    try:
        results = asyncio.run(router.sync_webhooks())
    except RemoteCallError as exc:
        typer.secho(f"Sync failed: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    for result in results:
        typer.echo(f"{result.workflow_id}\t{result.action}\t{result.webhook_url or result.reason}")


@workflow_app.command("trigger")
def workflow_trigger(
    ctx: typer.Context,
    workflow_id: str,
    action: str = typer.Option("execute", help="Action passed to the workflow"),
    payload: Optional[str] = typer.Option(None, help="JSON object payload"),
    user_id: str = typer.Option("cli", help="User the call is made for"),
    trace_id: Optional[str] = typer.Option(None, help="Reuse a correlation id"),
    attempt: int = typer.Option(1, min=1, help="Attempt number for retries"),
) -> None:
    """
    Dispatch a workflow and print the output envelope.

    Retry a failed call by passing its trace id with the next attempt number.

    Example:
        tracewire workflow trigger rules-audit --action audit
        tracewire workflow trigger echo-test --payload '{"ping": 1}'
        tracewire workflow trigger echo-test --trace-id trace_ab12 --attempt 2
    """
    try:
        parsed = json.loads(payload) if payload else {}
    except json.JSONDecodeError as exc:
        typer.secho(f"Invalid JSON payload: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=2)
    if not isinstance(parsed, dict):
        typer.secho("Payload must be a JSON object", fg=typer.colors.RED)
        raise typer.Exit(code=2)

    router = build_router(_config(ctx))
    output = asyncio.run(
        router.trigger(
            workflow_id,
            action,
            parsed,
            user_id=user_id,
            source_service="replit-shell",
            trace_id=trace_id,
            attempt=attempt,
        )
    )
    _echo_json(output.to_wire())
    if not output.success:
        raise typer.Exit(code=1)


@execution_app.command("list")
def execution_list(
    ctx: typer.Context,
    workflow_id: str,
    limit: int = typer.Option(20, min=1, help="Maximum number of executions"),
) -> None:
    """
    List executions of a workflow, newest first.

    Example:
        tracewire execution list european-football-daily
        # Output: 5f0c...    completed    2026-10-17 08:00:01+00:00
    """
    repo = get_repository(config=_config(ctx))
    executions = asyncio.run(repo.get_workflow_executions(workflow_id, limit))
    if not executions:
        typer.echo("No executions found")
        return
    for execution in executions:
        typer.echo(f"{execution.id}\t{execution.status}\t{execution.started_at}")


@execution_app.command("show")
def execution_show(ctx: typer.Context, execution_id: str) -> None:
    """Show an execution and the traces recorded for it."""
    repo = get_repository(config=_config(ctx))

    async def _load():
        execution = await repo.get_execution(execution_id)
        traces = await repo.get_execution_traces(execution_id) if execution else []
        return execution, traces

    execution, traces = asyncio.run(_load())
    if execution is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    typer.echo(f"Execution {execution.id} ({execution.workflow_id}): {execution.status}")
    for trace in traces:
        typer.echo(
            f"- #{trace.attempt_number} {trace.action}: {trace.overall_status}"
            + (f" ({trace.duration_ms}ms)" if trace.duration_ms is not None else "")
        )


@execution_app.command("poll")
def execution_poll(
    ctx: typer.Context,
    execution_id: str,
    interval: Optional[float] = typer.Option(None, help="Seconds between polls"),
    max_attempts: Optional[int] = typer.Option(None, help="Maximum number of polls"),
) -> None:
    """Poll the remote engine until an accepted execution finishes."""
    monitor = build_monitor(build_router(_config(ctx)))
    report = asyncio.run(
        monitor.poll(execution_id, interval=interval, max_attempts=max_attempts)
    )
    _echo_json(report.to_wire())


@audit_app.command("validate")
def audit_validate(
    ctx: typer.Context,
    manifest_id: str,
    execution_id: str,
    up_to_step: Optional[str] = typer.Option(
        None, help="Only check steps up to and including this step id"
    ),
) -> None:
    """
    Validate an execution's traces against a manifest.

    Example:
        tracewire audit validate european-football-daily 5f0c... --up-to-step research
    """
    config = _config(ctx)
    repo = get_repository(config=config)
    traces = asyncio.run(repo.get_execution_traces(execution_id))
    report = build_validator(config).validate(
        manifest_id, traces, up_to_step=up_to_step
    )
    if report is None:
        typer.secho(f"Manifest {manifest_id} not found", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(
        f"{report.workflow_id} v{report.manifest_version}: "
        f"{report.passed} passed, {report.failed} failed, {report.missing} missing "
        f"of {report.steps_checked}"
    )
    for step in report.steps:
        typer.echo(f"- {step.step_id}: {step.status}")
        for check in step.checks:
            if not check.passed:
                typer.echo(f"    {check.check}: {check.detail}")
    if report.failed or report.missing:
        raise typer.Exit(code=1)


@trace_app.command("list")
def trace_list(
    ctx: typer.Context,
    limit: int = typer.Option(50, min=1, help="Maximum number of traces"),
) -> None:
    """List the most recent communication traces."""
    repo = get_repository(config=_config(ctx))
    traces = asyncio.run(repo.get_recent_traces(limit))
    if not traces:
        typer.echo("No traces found")
        return
    for trace in traces:
        typer.echo(
            f"{trace.trace_id}\t#{trace.attempt_number}\t{trace.workflow_id}"
            f"\t{trace.action}\t{trace.overall_status}"
        )


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
