#!/usr/bin/env python3
"""
Operator CLI for the consensus engine.

Commands:
    rules <config.json>                                   List active rules, models and workflows
    request <config.json> <module> <action> <content>     Evaluate one request
    serve <config.json> [host] [port]                     Serve the HTTP API with uvicorn

Options:
    --mock <replies.json>   Use scripted replies (model id -> answer or list of answers) instead of a live endpoint
    --verbose               Full vote distribution and per-model debug logs
    --metrics <kind>        Metrics recorder for serve: log (default), memory or none
"""

import json
import logging
import sys
import uuid
from pathlib import Path
from typing import Dict, List, Optional

import anyio
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from com_yachtie_consensus.asgi import ASGICoreApplication, ASGIConfig
from com_yachtie_consensus.consensus import (
    ConsensusCore,
    ConsensusError,
    ConsensusResult,
    ConsensusSettings,
    EntityKind,
    ExecutionDecision,
    ModelInvoker,
    VerbosityLevel,
)
from com_yachtie_consensus.consensus.ConsensusASGIModule import ConsensusASGIModule
from com_yachtie_consensus.metrics import InMemoryMetricsRecorder, build_recorder
from com_yachtie_consensus.store import InMemoryConfigurationStore
from com_yachtie_consensus.utils.instructor import InstructorModelInvoker, MockInstructorModelInvoker

console = Console()

DECISION_STYLES = {
    ExecutionDecision.AUTO_EXECUTE: "green",
    ExecutionDecision.HUMAN_APPROVAL_REQUIRED: "yellow",
    ExecutionDecision.REJECTED: "red",
}


def build_invoker(mock_path: Optional[Path]) -> ModelInvoker:
    if mock_path is None:
        return InstructorModelInvoker()
    replies = json.loads(mock_path.read_text(encoding="utf-8"))
    console.print(f"[dim]Using scripted replies from {mock_path}[/dim]")
    return MockInstructorModelInvoker(replies)


async def show_configuration(store: InMemoryConfigurationStore) -> None:
    rules = Table(title="Active Rules")
    rules.add_column("Rule", style="cyan")
    rules.add_column("Module / Action")
    rules.add_column("Risk")
    rules.add_column("Quorum", justify="right")
    rules.add_column("Required / Approval / Auto", justify="right")
    for rule in sorted(await store.list_active(EntityKind.RULE), key=lambda r: r.id):
        rules.add_row(
            rule.id,
            f"{rule.module} / {rule.action_type}",
            rule.risk_level.value,
            str(rule.minimum_models_required),
            f"{rule.required_agreement_threshold:.2f} / {rule.human_approval_threshold:.2f} / "
            f"{rule.auto_execute_threshold:.2f}",
        )
    console.print(rules)

    models = Table(title="Active Models")
    models.add_column("Model", style="cyan")
    models.add_column("Provider")
    models.add_column("Priority", justify="right")
    models.add_column("Success rate", justify="right")
    models.add_column("Capabilities")
    for model in sorted(await store.list_active(EntityKind.MODEL), key=lambda m: (-m.priority, m.id)):
        models.add_row(
            model.id,
            model.provider,
            str(model.priority),
            f"{model.success_rate:.1f}%",
            ", ".join(model.capabilities),
        )
    console.print(models)

    workflows = await store.list_active(EntityKind.WORKFLOW)
    for workflow in sorted(workflows, key=lambda w: w.id):
        stages = " → ".join(
            f"[{'∥' if stage.parallel else '→'}] {stage.purpose or ', '.join(stage.models)}"
            for stage in workflow.model_chain
        )
        console.print(f"[bold]{workflow.id}[/bold] ({workflow.module}/{workflow.trigger_type}): {stages}")


def show_result(result: ConsensusResult, metrics: InMemoryMetricsRecorder) -> None:
    metadata = result.consensus_metadata
    style = DECISION_STYLES[metadata.execution_decision]
    console.print(
        Panel(
            result.consensus or "[dim](empty)[/dim]",
            title=f"[{style}]{metadata.execution_decision.value}[/{style}]",
            subtitle=f"confidence {result.confidence:.3f} · rule {metadata.rule_id}",
        )
    )

    if metadata.stages:
        stages = Table(title=f"Workflow {metadata.workflow_id}")
        stages.add_column("#", justify="right")
        stages.add_column("Purpose")
        stages.add_column("Mode")
        stages.add_column("Confidence", justify="right")
        stages.add_column("Models")
        for stage in metadata.stages:
            stages.add_row(
                str(stage.stage_index),
                stage.purpose,
                "parallel" if stage.parallel else "sequential" + (" (degraded)" if stage.degraded else ""),
                f"{stage.confidence:.3f}" if stage.confidence is not None else "-",
                ", ".join(stage.models_used),
            )
        console.print(stages)

    calls = Table(title="Model Invocations")
    calls.add_column("Model", style="cyan")
    calls.add_column("Status")
    calls.add_column("Latency", justify="right")
    calls.add_column("Cost", justify="right")
    for metric in metrics.metrics:
        status = "[green]ok[/green]" if metric.success else f"[red]{metric.error_kind}[/red]"
        calls.add_row(metric.model_id, status, f"{metric.latency_ms:.0f}ms", f"${metric.cost:.6f}")
    console.print(calls)
    console.print(f"Total cost: ${metrics.total_cost():.6f}")


async def run_request(
    store: InMemoryConfigurationStore,
    invoker: ModelInvoker,
    settings: ConsensusSettings,
    module: str,
    action_type: str,
    content: str,
) -> int:
    metrics = InMemoryMetricsRecorder()
    engine = ConsensusCore.engine(configuration=store, invoker=invoker, metrics=metrics, settings=settings)
    request = ConsensusCore.request(
        content=content,
        module=module,
        action_type=action_type,
        session_id=f"cli-{uuid.uuid4().hex[:8]}",
    )

    try:
        with console.status(f"Querying models for {module}/{action_type}..."):
            result = await engine.call(request)
    except ConsensusError as e:
        console.print(f"[red]✗ {e.kind}: {e.message}[/red]")
        return 1

    show_result(result, metrics)
    return 0


def serve(
    store: InMemoryConfigurationStore,
    invoker: ModelInvoker,
    settings: ConsensusSettings,
    args: List[str],
    metrics_kind: str = "log",
) -> None:
    metrics = build_recorder(metrics_kind)
    engine = ConsensusCore.engine(configuration=store, invoker=invoker, metrics=metrics, settings=settings)
    application = ASGICoreApplication(ASGIConfig())
    application.mount_module(ConsensusASGIModule(engine=engine, configuration=store, metrics=metrics))
    host = args[0] if args else None
    port = int(args[1]) if len(args) > 1 else None
    application.run(host=host, port=port)


def parse_options(argv: List[str]) -> Dict[str, Optional[str]]:
    options: Dict[str, Optional[str]] = {"mock": None, "verbose": None, "metrics": None}
    positional: List[str] = []
    index = 0
    while index < len(argv):
        arg = argv[index]
        if arg in ("--mock", "--metrics") and index + 1 < len(argv):
            options[arg[2:]] = argv[index + 1]
            index += 2
            continue
        if arg == "--verbose":
            options["verbose"] = "1"
        else:
            positional.append(arg)
        index += 1
    argv[:] = positional
    return options


def main() -> None:
    """Main entry point for the CLI."""
    argv = sys.argv[1:]
    options = parse_options(argv)

    if len(argv) < 2 or argv[0] not in ("rules", "request", "serve"):
        console.print(__doc__)
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if options["verbose"] else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    command, config_path = argv[0], Path(argv[1])
    try:
        store = InMemoryConfigurationStore.from_json_file(config_path)
    except (FileNotFoundError, ConsensusError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    settings = ConsensusSettings.from_env()
    if options["verbose"]:
        settings = settings.model_copy(update={"verbosity": VerbosityLevel.VERBOSE})

    if command == "rules":
        anyio.run(show_configuration, store)
        return

    mock_path = Path(options["mock"]) if options["mock"] else None
    invoker = build_invoker(mock_path)

    if command == "serve":
        try:
            serve(store, invoker, settings, argv[2:], options["metrics"] or "log")
        except ValueError as e:
            console.print(f"[red]Error: {e}[/red]")
            sys.exit(1)
        return

    if len(argv) < 5:
        console.print("[red]Usage: ConsensusCLI.py request <config.json> <module> <action> <content>[/red]")
        sys.exit(1)

    try:
        exit_code = anyio.run(run_request, store, invoker, settings, argv[2], argv[3], " ".join(argv[4:]))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user.[/yellow]")
        exit_code = 130
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
