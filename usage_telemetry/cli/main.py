"""
CLI interface for Usage Telemetry.

Provides command-line access to identity normalization, usage summaries,
key statistics and the persisted model price table.
"""

import json
import math
import sys
from pathlib import Path
from typing import Any, Optional

import structlog
import typer
import yaml
from rich.console import Console
from rich.table import Table

from usage_telemetry.config.loader import EngineConfig, load_engine_config
from usage_telemetry.core.collector import parse_timestamp, parse_usage_payload
from usage_telemetry.core.key_stats import compute_key_stats
from usage_telemetry.core.logging import configure_logging
from usage_telemetry.core.pricing import ModelPrice, calculate_total_cost
from usage_telemetry.core.rates import calculate_recent_rates, calculate_token_breakdown
from usage_telemetry.core.status import StatusBucket, calculate_status_bar
from usage_telemetry.storage.price_store import ModelPriceStore

app = typer.Typer()
prices_app = typer.Typer(help="Manage the persisted model price table.")
app.add_typer(prices_app, name="prices")
console = Console()
logger = structlog.get_logger(__name__)

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

CLI_ERRORS = (FileNotFoundError, ValueError, yaml.YAMLError)

BUCKET_SYMBOLS = {
    StatusBucket.SUCCESS: "[green]█[/]",
    StatusBucket.FAILURE: "[red]█[/]",
    StatusBucket.MIXED: "[yellow]█[/]",
    StatusBucket.IDLE: "[dim]·[/]",
}


def _load_config(config_path: Optional[str]) -> EngineConfig:
    """Load the engine config (defaults when no path is given) and set up logging."""
    config = load_engine_config(config_path) if config_path else EngineConfig()
    configure_logging(config.logging.level, config.logging.format)
    return config


def _read_payload(path: str) -> Any:
    """Read a JSON usage payload from disk.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is not valid JSON
    """
    payload_path = Path(path)
    if not payload_path.exists():
        raise FileNotFoundError(f"Payload file not found: {path}")
    with open(payload_path, 'r', encoding='utf-8') as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in payload file {path}: {e}")


def _format_currency(amount: float) -> str:
    return f"${amount:,.4f}"


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Usage Telemetry CLI."""
    if ctx.invoked_subcommand is None:
        console.print("Usage Telemetry - Use --help to see available commands")


@app.command()
def identify(
    value: str = typer.Argument(..., help="Raw source value (key, masked key or label)"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Engine config YAML"),
):
    """Print the privacy-safe identity of a source value."""
    try:
        config = _load_config(config_path)
        identity = config.build_normalizer().normalize(value)
    except CLI_ERRORS as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not identity:
        console.print("[red]Error:[/] value is blank")
        sys.exit(EXIT_CODE_FAIL)
    console.print(identity, markup=False, highlight=False)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def summary(
    payload_path: str = typer.Argument(..., help="Usage payload JSON file"),
    window: Optional[float] = typer.Option(None, "--window", "-w", help="Rate window in minutes"),
    db_path: Optional[str] = typer.Option(None, "--db", help="Price store database path"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Engine config YAML"),
    now: Optional[str] = typer.Option(None, "--now", help="Reference time (ISO-8601), defaults to now"),
):
    """Summarize a usage payload: counts, rates, cost and status bar."""
    try:
        config = _load_config(config_path)
        payload = _read_payload(payload_path)
        reference = parse_timestamp(now) if now else None
        if now and reference is None:
            raise ValueError(f"Invalid --now timestamp: {now}")
        prices = ModelPriceStore(db_path or config.price_store_path).load()
    except CLI_ERRORS as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    parsed = parse_usage_payload(payload, config.build_normalizer())
    rates = calculate_recent_rates(
        parsed.events,
        window if window is not None else config.rate_window_minutes,
        now=reference,
    )
    breakdown = calculate_token_breakdown(parsed.events)
    status_bar = calculate_status_bar(parsed.events, now=reference, window=config.status_window)
    logger.debug("Summarized payload", events=len(parsed.events), skipped=len(parsed.skipped))

    console.print("\n[bold]Usage Summary[/bold]")
    console.print("-" * 40)
    console.print(f"Events: {len(parsed.events)}")
    console.print(f"Skipped entries: {len(parsed.skipped)}")
    console.print(f"Total tokens: {sum(event.total_tokens for event in parsed.events)}")
    console.print(f"Cached tokens: {breakdown.cached_tokens}")
    console.print(f"Reasoning tokens: {breakdown.reasoning_tokens}")
    console.print(f"RPM: {rates.rpm:.2f} (last {rates.window_minutes:g} min)")
    console.print(f"TPM: {rates.tpm:.2f}")
    console.print(f"Total cost: {_format_currency(calculate_total_cost(parsed.events, prices))}")
    console.print(f"Success rate: {status_bar.success_rate:.1f}%")
    console.print("Status: " + "".join(BUCKET_SYMBOLS[bucket] for bucket in status_bar.buckets))
    sys.exit(EXIT_CODE_PASS)


@app.command()
def keys(
    payload_path: str = typer.Argument(..., help="Usage payload JSON file"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Engine config YAML"),
):
    """Show success/failure counts per source identity and auth index."""
    try:
        config = _load_config(config_path)
        payload = _read_payload(payload_path)
    except CLI_ERRORS as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    stats = compute_key_stats(parse_usage_payload(payload, config.build_normalizer()).events)
    if not stats.by_source and not stats.by_auth_index:
        console.print("[bold yellow]No usage details found[/]")
        sys.exit(EXIT_CODE_PASS)

    for title, mapping in (("Source", stats.by_source), ("Auth index", stats.by_auth_index)):
        if not mapping:
            continue
        table = Table(title=f"By {title.lower()}")
        table.add_column(title)
        table.add_column("Success", justify="right")
        table.add_column("Failure", justify="right")
        for key in sorted(mapping):
            bucket = mapping[key]
            table.add_row(key, str(bucket.success), str(bucket.failure))
        console.print(table)
    sys.exit(EXIT_CODE_PASS)


@prices_app.command("list")
def prices_list(
    db_path: Optional[str] = typer.Option(None, "--db", help="Price store database path"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Engine config YAML"),
):
    """List the stored model prices (per 1M tokens)."""
    try:
        config = _load_config(config_path)
        prices = ModelPriceStore(db_path or config.price_store_path).load()
    except CLI_ERRORS as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not prices:
        console.print("[dim]No model prices configured.[/]")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Model prices (per 1M tokens)")
    table.add_column("Model")
    table.add_column("Prompt", justify="right")
    table.add_column("Completion", justify="right")
    table.add_column("Cache", justify="right")
    for model in sorted(prices):
        price = prices[model]
        table.add_row(model, f"{price.prompt:g}", f"{price.completion:g}", f"{price.cache:g}")
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@prices_app.command("set")
def prices_set(
    model: str = typer.Argument(..., help="Model name"),
    prompt: float = typer.Option(0.0, "--prompt", help="Uncached input price per 1M tokens"),
    completion: float = typer.Option(0.0, "--completion", help="Output price per 1M tokens"),
    cache: Optional[float] = typer.Option(None, "--cache", help="Cached input price (defaults to prompt)"),
    db_path: Optional[str] = typer.Option(None, "--db", help="Price store database path"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Engine config YAML"),
):
    """Add or replace the price of one model."""
    try:
        if not all(math.isfinite(value) for value in (prompt, completion, cache or 0.0)):
            raise ValueError("prices must be finite numbers")
        if prompt < 0 or completion < 0 or (cache is not None and cache < 0):
            raise ValueError("prices must be >= 0")
        config = _load_config(config_path)
        price = ModelPrice(prompt=prompt, completion=completion, cache=prompt if cache is None else cache)
        ModelPriceStore(db_path or config.price_store_path).set_price(model, price)
    except CLI_ERRORS as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"[green]✓[/] Saved price for {model.strip()}")
    sys.exit(EXIT_CODE_PASS)


@prices_app.command("remove")
def prices_remove(
    model: str = typer.Argument(..., help="Model name"),
    db_path: Optional[str] = typer.Option(None, "--db", help="Price store database path"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Engine config YAML"),
):
    """Remove the price of one model."""
    try:
        config = _load_config(config_path)
        removed = ModelPriceStore(db_path or config.price_store_path).remove_price(model)
    except CLI_ERRORS as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not removed:
        console.print(f"[red]Error:[/] no price stored for {model.strip()}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Removed price for {model.strip()}")
    sys.exit(EXIT_CODE_PASS)


if __name__ == "__main__":
    app()
