"""
CLI interface for AI Gen Router.

Provides command-line access to classification, model selection, cost
estimation and routed generation.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ai_gen_router.config.loader import (
    DEFAULT_TIMEOUT_SECONDS,
    ModelConfig,
    get_model_config,
    load_router_settings,
)
from ai_gen_router.core.classifier import classify
from ai_gen_router.core.errors import GenerationError
from ai_gen_router.core.orchestrator import GenerationAttemptResult
from ai_gen_router.core.pricing import PRICING_TABLE, estimate_cost, format_cost
from ai_gen_router.core.prompts import GenerationRequest
from ai_gen_router.core.selector import select_model
from ai_gen_router.core.tiers import ModelTier, parse_model_tier
from ai_gen_router.core.usage_tracker import AggregateStats, CostComparison, get_usage_tracker
from ai_gen_router.sdk.generator import GenerationClient

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Router YAML config (defaults to GPT5_* environment flags)"
)


def _load_config(config_path: Optional[str]):
    """Return (model config, timeout) from a YAML file or the environment."""
    if config_path:
        settings = load_router_settings(config_path)
        return settings.model, settings.timeout_seconds
    return get_model_config(), DEFAULT_TIMEOUT_SECONDS


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
):
    """AI Gen Router CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    if ctx.invoked_subcommand is None:
        console.print("AI Gen Router - Use --help to see available commands")


@app.command(name="classify")
def classify_command(request: str = typer.Argument(..., help="Generation request text")):
    """Classify the complexity of a request."""
    console.print(f"Complexity: [bold]{classify(request).value}[/bold]")


@app.command(name="select")
def select_command(
    request: str = typer.Argument(..., help="Generation request text"),
    config: Optional[str] = ConfigOption
):
    """Show the model selection for a request."""
    try:
        model_config, _ = _load_config(config)
    except Exception as e:
        console.print(f"[red]Error loading config:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    selection = select_model(request, model_config)

    table = Table(title="Model Selection")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("Complexity", classify(request).value)
    table.add_row("Model", selection.model.value)
    table.add_row("Reasoning effort", selection.reasoning_effort.value if selection.reasoning_effort else "-")
    table.add_row("Temperature", f"{selection.temperature:g}")
    table.add_row("Max tokens", str(selection.max_tokens))
    table.add_row("Cost multiplier", f"{selection.cost_multiplier:g}x")
    console.print(table)


@app.command()
def estimate(
    model: str = typer.Argument(..., help="Model tier, e.g. gpt-5"),
    input_tokens: int = typer.Argument(..., min=0, help="Input tokens"),
    output_tokens: int = typer.Argument(..., min=0, help="Output tokens")
):
    """Estimate the cost of a request."""
    try:
        tier = parse_model_tier(model)
    except ValueError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    cost = estimate_cost(tier, input_tokens, output_tokens)
    console.print(f"Estimated cost: {format_cost(cost, places=6)}")


@app.command()
def pricing():
    """Show the pricing table."""
    table = Table(title="Model Pricing (USD per 1M tokens)")
    table.add_column("Model")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Reasoning effort")

    for tier in ModelTier:
        record = PRICING_TABLE.get_pricing(tier)
        table.add_row(
            tier.value,
            _format_currency(record.input_per_million),
            _format_currency(record.output_per_million),
            "yes" if tier.supports_reasoning_effort else "no"
        )
    console.print(table)


@app.command(name="show-config")
def show_config(config: Optional[str] = ConfigOption):
    """Show the effective model configuration."""
    try:
        model_config, timeout = _load_config(config)
    except Exception as e:
        console.print(f"[red]Error loading config:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    _display_config(model_config, timeout)


@app.command()
def generate(
    request: str = typer.Argument(..., help="Generation request text"),
    config: Optional[str] = ConfigOption,
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the generated content to this file"
    )
):
    """
    Run one routed generation through the OpenAI backend.

    Requires OPENAI_API_KEY. Prints the result metadata and the usage
    statistics collected in this process.
    """
    try:
        model_config, timeout = _load_config(config)
        client = GenerationClient(config=model_config, timeout_seconds=timeout)
        result = asyncio.run(client.generate(GenerationRequest(user_request=request)))
    except GenerationError as e:
        console.print(f"[red]Generation failed:[/] {str(e)}")
        _display_result(e.result)
        _display_usage()
        sys.exit(EXIT_CODE_FAIL)
    except Exception as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    _display_result(result)
    if output:
        output.write_text(result.content or "", encoding="utf-8")
        console.print(f"[green]✓[/] Content written to {output}")
    else:
        console.print(result.content)
    _display_usage()
    sys.exit(EXIT_CODE_PASS)


def _format_currency(amount: float) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.2f}"


def _format_percent(value: float) -> str:
    return f"{value:.2f}%"


def _display_config(model_config: ModelConfig, timeout: float):
    """Display a model configuration."""
    console.print("\n[bold]Model Configuration[/bold]")
    console.print("-" * 40)
    console.print(f"Primary: {model_config.primary.value}")
    chain = " -> ".join(m.value for m in model_config.fallback_chain) or "(none)"
    console.print(f"Fallback chain: {chain}")
    console.print(f"Reasoning effort: {model_config.reasoning_effort.value}")
    console.print(f"Temperature: {model_config.temperature:g}")
    console.print(f"Max tokens: {model_config.max_tokens}")
    console.print(f"Timeout: {timeout:g}s")


def _display_result(result: GenerationAttemptResult):
    """Display the metadata of a generation result."""
    console.print("\n[bold]Generation Result[/bold]")
    console.print("-" * 40)
    console.print(f"Status: {'[green]success[/]' if result.success else '[red]failed[/]'}")
    console.print(f"Model: {result.model.value}")
    if result.reasoning_effort:
        console.print(f"Reasoning effort: {result.reasoning_effort.value}")
    console.print(f"Tokens: {result.tokens_in:,} in / {result.tokens_out:,} out")
    console.print(f"Latency: {result.latency_ms:,.0f}ms")
    console.print(f"Estimated cost: {format_cost(result.estimated_cost)}")
    if result.fallback_occurred:
        console.print(f"Fallback: {result.fallback_reason}")
        if result.original_model_attempted:
            console.print(f"Originally attempted: {result.original_model_attempted.value}")
    if result.error_kind:
        console.print(f"Error ({result.error_kind.value}): {result.error_message}")


def _display_usage():
    """Display the usage collected by the process-wide tracker."""
    tracker = get_usage_tracker()
    _display_stats(tracker.stats(), tracker.compare_costs())


def _display_stats(stats: Optional[AggregateStats], comparison: Optional[CostComparison] = None):
    """Display aggregated usage statistics and the tier cost comparison."""
    if stats is None:
        console.print("\n[dim]No usage data available.[/]")
        return

    console.print("\n[bold]Model Usage Statistics[/bold]")
    console.print("-" * 40)
    console.print(f"Total requests: {stats.total_requests}")
    console.print(f"Success rate: {_format_percent(stats.success_rate)}")
    console.print(f"Fallback rate: {_format_percent(stats.fallback_rate)}")
    console.print(f"Total cost: {format_cost(stats.total_cost)}")
    console.print(f"Avg cost/request: {format_cost(stats.avg_cost_per_request)}")
    console.print(f"Avg tokens: {stats.avg_tokens:,.0f}")
    console.print(f"Avg time: {stats.avg_generation_time_ms:,.0f}ms")

    table = Table(title="Model Distribution")
    table.add_column("Model")
    table.add_column("Requests", justify="right")
    table.add_column("Share", justify="right")
    for model, count in stats.model_distribution.items():
        table.add_row(model, str(count), f"{count / stats.total_requests * 100:.1f}%")
    console.print(table)

    if stats.reasoning_distribution:
        table = Table(title="Reasoning Effort Distribution")
        table.add_column("Effort")
        table.add_column("Requests", justify="right")
        table.add_column("Share", justify="right")
        for effort, count in stats.reasoning_distribution.items():
            table.add_row(effort, str(count), f"{count / stats.total_requests * 100:.1f}%")
        console.print(table)

    if comparison:
        console.print(
            f"Cost comparison: {comparison.candidate_model} avg {format_cost(comparison.candidate_avg_cost)} "
            f"vs {comparison.baseline_model} avg {format_cost(comparison.baseline_avg_cost)} "
            f"({_format_percent(comparison.savings_percentage)} savings)"
        )


if __name__ == "__main__":
    app()
