"""CLI entry point for the CAD request router.

Diagnostic commands for inspecting routing decisions, previewing generated
scripts and exercising the full routing pipeline against the simulated
application.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from src.adapters.simulated import SimulatedApplication, SimulationProfile
from src.models.config import BridgeConfig, ConfigManager
from src.models.data_models import (
    Failure,
    HealthReport,
    NoFallback,
    OperationRequest,
    Result,
    StrategyFallback,
)
from src.models.errors import BridgeError
from src.models.operations import validate_parameters
from src.routing.complexity_analyzer import ComplexityAnalyzer
from src.routing.context import BridgeContext
from src.routing.direct_calls import script_target
from src.scripting.script_generator import ScriptGenerator


console = Console()


def parse_params(pairs: Tuple[str, ...], params_file: Optional[Path] = None) -> Dict[str, Any]:
    """
    Build a parameter mapping from ``key=value`` pairs and an optional YAML file.

    Values are parsed as YAML scalars, so ``true``, ``25`` and ``[a, b]``
    become a boolean, a number and a list.

    Raises:
        click.BadParameter: If a pair has no ``=`` or the file is not a mapping
    """
    params: Dict[str, Any] = {}
    if params_file is not None:
        with open(params_file, "r") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise click.BadParameter(f"{params_file} does not contain a mapping", param_hint="--file")
        params.update(loaded)

    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"Expected key=value, got: {pair}", param_hint="--param")
        params[key.strip()] = yaml.safe_load(raw) if raw else ""
    return params


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(path_type=Path),
    default="config/config.yaml",
    help="Path to configuration YAML file",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (overrides config)",
)
@click.version_option(version="1.0.0", prog_name="cad-bridge")
@click.pass_context
def cli(ctx: click.Context, config: Path, log_level: Optional[str]) -> None:
    """
    CAD Bridge - adaptive routing of CAD automation requests.

    Operations whose effective parameter count fits the automation bridge
    are called directly; wider ones run as generated scripts inside the
    application.

    Examples:

        # Show how an extrusion would be routed
        $ cad-bridge analyze extrude -p depth=25 -p thinFeature=true -p thinThickness=2

        # Print the script a sweep would run
        $ cad-bridge generate sweep -p profileSketch=Sketch1 -p pathSketch=Sketch2

        # Execute against the simulated application
        $ cad-bridge run extrude -p depth=25 --repeat 5
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["log_level"] = log_level.upper() if log_level else None


def _load_config(ctx: click.Context, **overrides: Any) -> BridgeConfig:
    cli_overrides = {"log_level": ctx.obj.get("log_level"), **overrides}
    return ConfigManager(ctx.obj["config_path"]).load_config(cli_overrides)


@cli.command()
@click.argument("operation")
@click.option("--param", "-p", "pairs", multiple=True, help="Parameter as key=value (repeatable)")
@click.option("--file", "-f", "params_file", type=click.Path(exists=True, path_type=Path),
              help="YAML file with parameters")
@click.pass_context
def analyze(ctx: click.Context, operation: str, pairs: Tuple[str, ...], params_file: Optional[Path]) -> None:
    """Show the routing decision for OPERATION."""
    try:
        config = _load_config(ctx)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)

    params = parse_params(pairs, params_file)
    analyzer = ComplexityAnalyzer(config.analyzer)
    report = analyzer.analyze(operation, params)

    table = Table(title="Complexity Report", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Operation", report.operation)
    table.add_row("Effective Count", str(report.effective_count))
    table.add_row("Strategy", report.strategy.value)
    table.add_row("Confidence", f"{report.confidence:.2f}")
    table.add_row("Features", ", ".join(report.features) or "-")
    table.add_row("Known Family", "yes" if report.known else "no")
    table.add_row("Reason", report.reason or "-")
    console.print(table)

    advice = analyzer.advise(operation, params)
    if advice:
        advice_table = Table(title="Simplifications")
        advice_table.add_column("Feature", style="cyan", no_wrap=True)
        advice_table.add_column("Saves", justify="right", style="green")
        advice_table.add_column("Resulting Count", justify="right", style="magenta")
        advice_table.add_column("Suggestion")
        for item in advice:
            advice_table.add_row(item.feature, str(item.saves), str(item.resulting_count), item.suggestion)
        console.print(advice_table)


@cli.command()
@click.argument("operation")
@click.option("--param", "-p", "pairs", multiple=True, help="Parameter as key=value (repeatable)")
@click.option("--file", "-f", "params_file", type=click.Path(exists=True, path_type=Path),
              help="YAML file with parameters")
@click.option("--output", "-o", type=click.Path(path_type=Path), help="Write the script to this file")
@click.pass_context
def generate(
    ctx: click.Context,
    operation: str,
    pairs: Tuple[str, ...],
    params_file: Optional[Path],
    output: Optional[Path],
) -> None:
    """Print the script OPERATION would run on the script path."""
    try:
        config = _load_config(ctx)
        family = operation.strip().lower()
        params = parse_params(pairs, params_file)
        model = validate_parameters(family, params)
        generator = ScriptGenerator(module=config.script_module)
        if generator.has_template(family):
            script = generator.generate(family, model)
        else:
            target = script_target(family, model, params)
            script = generator.generate_generic(target.method, target.args, family=family)
    except (BridgeError, ValueError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)

    if output:
        output.write_text(script.text, encoding="utf-8")
        console.print(f"[bold]Script written to:[/bold] {output}")
    else:
        click.echo(script.text, nl=False)


@cli.command()
@click.argument("operation")
@click.option("--param", "-p", "pairs", multiple=True, help="Parameter as key=value (repeatable)")
@click.option("--file", "-f", "params_file", type=click.Path(exists=True, path_type=Path),
              help="YAML file with parameters")
@click.option("--pool-size", type=int, help="Handle pool size (overrides config)")
@click.option("--repeat", "-n", type=int, default=1, show_default=True, help="Concurrent copies of the request")
@click.option("--fallback", type=click.Choice(["none", "script"]), default="none", show_default=True,
              help="Fallback for direct-strategy failures")
@click.option("--fail-direct", is_flag=True, help="Simulate direct calls returning no result")
@click.option("--fail-scripts", is_flag=True, help="Simulate script execution failures")
@click.option("--latency", type=float, default=0.0, help="Simulated seconds per application call")
@click.pass_context
def run(
    ctx: click.Context,
    operation: str,
    pairs: Tuple[str, ...],
    params_file: Optional[Path],
    pool_size: Optional[int],
    repeat: int,
    fallback: str,
    fail_direct: bool,
    fail_scripts: bool,
    latency: float,
) -> None:
    """Execute OPERATION against the simulated application."""
    try:
        config = _load_config(ctx, pool_max_size=pool_size)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)

    params = parse_params(pairs, params_file)
    profile = SimulationProfile(latency=latency, fail_direct=fail_direct, fail_scripts=fail_scripts)
    request = OperationRequest(operation=operation, parameters=params)
    policy = StrategyFallback() if fallback == "script" else NoFallback()

    results, health = asyncio.run(_run_requests(config, profile, request, policy, repeat))

    _display_results(results)
    _display_health(health)

    if not all(r.ok for r in results):
        sys.exit(1)


async def _run_requests(
    config: BridgeConfig,
    profile: SimulationProfile,
    request: OperationRequest,
    policy: Any,
    repeat: int,
) -> Tuple[List[Result], HealthReport]:
    application = SimulatedApplication(profile)
    async with BridgeContext.from_config(config, application.connect) as context:
        results = await asyncio.gather(*[
            context.orchestrator.execute(request, fallback=policy) for _ in range(repeat)
        ])
        health = context.orchestrator.health().unwrap()
    return list(results), health


def _display_results(results: List[Result]) -> None:
    table = Table(title="Results")
    table.add_column("#", justify="right")
    table.add_column("Outcome")
    table.add_column("Requested", style="cyan")
    table.add_column("Executed", style="cyan")
    table.add_column("Fallback")
    table.add_column("Attempts", justify="right")
    table.add_column("Handle")
    table.add_column("Elapsed", justify="right")
    table.add_column("Detail")

    for i, result in enumerate(results, 1):
        meta = result.metadata
        if isinstance(result, Failure):
            outcome = f"[red]{result.kind.value}[/red]"
            detail = result.reason
        else:
            outcome = "[green]ok[/green]"
            detail = str(getattr(result.value, "name", result.value))
        table.add_row(
            str(i),
            outcome,
            meta.requested_strategy.value if meta.requested_strategy else "-",
            meta.executed_strategy.value if meta.executed_strategy else "-",
            "yes" if meta.fallback_used else "no",
            str(meta.attempts),
            meta.handle_id or "-",
            f"{meta.elapsed_ms:.1f}ms",
            escape(detail),
        )
    console.print(table)


def _display_health(health: HealthReport) -> None:
    metrics = health.metrics
    table = Table(title="Health", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Healthy", "yes" if health.healthy else "no")
    table.add_row("Requests", str(metrics.requests))
    table.add_row("Successes", str(metrics.successes))
    table.add_row("Failures", str(metrics.failures))
    table.add_row("Direct Calls", str(metrics.direct_calls))
    table.add_row("Script Calls", str(metrics.script_calls))
    table.add_row("Fallbacks", str(metrics.fallbacks))
    table.add_row("Retries", str(metrics.retries))
    table.add_row("Avg Latency", f"{metrics.average_latency_ms:.1f}ms")
    table.add_row("Pool", f"{health.pool.total}/{health.pool.max_size} handles")
    for breaker in health.breakers:
        table.add_row(f"Breaker {breaker.name}", f"{breaker.state.value} ({breaker.failure_count} failures)")
    console.print(table)


if __name__ == "__main__":
    cli()
