"""
CLI interface for the LLM orchestrator.

Inspect routes and usage, manage route overrides and the response cache
table, and run one-off calls.
"""

import asyncio
import sqlite3
import sys
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from llm_orchestrator.config.loader import OrchestratorConfig, default_config, load_config
from llm_orchestrator.core.errors import OrchestratorError
from llm_orchestrator.core.routing import RouteConfig
from llm_orchestrator.core.task_types import TaskType
from llm_orchestrator.logging_config import setup_logging
from llm_orchestrator.sdk.orchestrator import create_orchestrator
from llm_orchestrator.storage.db import DEFAULT_DB_PATH
from llm_orchestrator.storage.repository import (
    delete_expired_cache,
    fetch_route_override,
    get_repository,
    initialize_schema,
    upsert_route_override,
)

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to YAML configuration")
DB_OPTION = typer.Option(DEFAULT_DB_PATH, "--db", help="Path to the SQLite database")


def _load(config_path: Optional[str]) -> OrchestratorConfig:
    return load_config(config_path) if config_path else default_config()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON lines"),
):
    """LLM orchestrator CLI."""
    setup_logging("DEBUG" if verbose else "WARNING", json_format=json_logs)
    if ctx.invoked_subcommand is None:
        console.print("LLM Orchestrator - Use --help to see available commands")


@app.command()
def init(db: str = DB_OPTION):
    """Create the usage ledger, route override and response cache tables."""
    try:
        initialize_schema(db)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except sqlite3.Error as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def routes(
    config: Optional[str] = CONFIG_OPTION,
    db: Optional[str] = typer.Option(None, "--db", help="Also show overrides stored in this database"),
):
    """Show the effective route for every task type."""
    try:
        settings = _load(config)
    except (OrchestratorError, FileNotFoundError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="LLM Routes")
    for column in ("Task", "Primary", "Fallback", "Max tokens", "Temp", "Timeout", "Cache TTL", "Format", "Source"):
        table.add_column(column)

    for task_type in TaskType:
        route, source = settings.get_route(task_type), "config"
        if db and Path(db).exists():
            try:
                override = fetch_route_override(task_type.value, db)
            except sqlite3.OperationalError:
                override = None
            if override is not None:
                route, source = override, "store"
        table.add_row(
            route.task_type,
            route.primary_provider,
            route.fallback_provider or "-",
            str(route.max_tokens),
            f"{route.temperature:g}",
            f"{route.timeout:g}s",
            "off" if route.cache_ttl == 0 else f"{route.cache_ttl:g}s",
            route.response_format,
            source,
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command("set-route")
def set_route(
    task: str = typer.Argument(..., help="Task type to override"),
    primary: str = typer.Option(..., "--primary", "-p", help="Primary provider name"),
    fallback: Optional[str] = typer.Option(None, "--fallback", "-f", help="Fallback provider name"),
    max_tokens: Optional[int] = typer.Option(None, "--max-tokens", help="Default max tokens"),
    temperature: Optional[float] = typer.Option(None, "--temperature", help="Default temperature"),
    config: Optional[str] = CONFIG_OPTION,
    db: str = DB_OPTION,
):
    """Store a route override that the orchestrator reads at call time."""
    try:
        task_type = TaskType(task)
    except ValueError:
        console.print(f"[red]Unknown task type:[/] {task}")
        sys.exit(EXIT_CODE_FAIL)

    try:
        settings = _load(config)
        for name in (primary, fallback):
            if name and name not in settings.providers:
                raise OrchestratorError(f"unknown provider '{name}'")
        base = settings.get_route(task_type)
        route = RouteConfig(
            task_type=task_type.value,
            primary_provider=primary,
            fallback_provider=fallback,
            max_tokens=max_tokens if max_tokens is not None else base.max_tokens,
            temperature=temperature if temperature is not None else base.temperature,
            timeout=base.timeout,
            cache_ttl=base.cache_ttl,
            response_format=base.response_format,
        )
        initialize_schema(db)
        upsert_route_override(route, db)
    except (OrchestratorError, FileNotFoundError, yaml.YAMLError, sqlite3.Error) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"[green]✓[/] Route for {task_type.value}: {primary} -> {fallback or 'no fallback'}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def usage(
    task: Optional[str] = typer.Option(None, "--task", "-t", help="Filter to a single task type"),
    days: int = typer.Option(30, "--days", "-d", help="Days of history to include"),
    db: str = DB_OPTION,
):
    """Summarise recorded LLM usage and cost."""
    repository = get_repository(db)
    try:
        if task:
            stats = repository.get_usage_stats(task_type=task, days=days)
            per_task = {task: stats} if stats["total_requests"] else {}
        else:
            per_task = repository.get_stats_by_task(days=days)
    except sqlite3.OperationalError as e:
        if "no such table" in str(e).lower():
            console.print("\n[bold yellow]No LLM usage data found[/]")
            console.print("\nRun `llm-orchestrator init` to initialize the database\n")
            sys.exit(EXIT_CODE_PASS)
        raise

    if not per_task:
        console.print("\n[bold yellow]No LLM usage data found[/]\n")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title=f"LLM Usage (last {days} days)")
    for column in ("Task", "Requests", "Failures", "Tokens", "Cost"):
        table.add_column(column)
    for task_name, stats in per_task.items():
        table.add_row(
            task_name,
            str(stats["total_requests"]),
            str(stats["failures"]),
            str(stats["total_tokens"]),
            _format_currency(stats["total_cost"]),
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command("prune-cache")
def prune_cache(db: str = DB_OPTION):
    """Delete expired rows from the persistent response cache."""
    try:
        removed = delete_expired_cache(db)
    except sqlite3.OperationalError as e:
        if "no such table" in str(e).lower():
            console.print("\n[bold yellow]No response cache found[/]\n")
            sys.exit(EXIT_CODE_PASS)
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"[green]✓[/] Removed {removed} expired cache entries")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def chat(
    prompt: str = typer.Argument(..., help="User message"),
    task: str = typer.Option(TaskType.CHAT.value, "--task", "-t", help="Task type to route as"),
    config: Optional[str] = CONFIG_OPTION,
):
    """Run a single orchestrated chat completion."""
    try:
        response = asyncio.run(_run_chat(prompt, task, _load(config)))
    except (OrchestratorError, FileNotFoundError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(response.content)
    console.print(
        f"\n[dim]{response.provider}/{response.model} "
        f"tokens={response.tokens_used.total_tokens} cost={_format_currency(response.cost, 6)} "
        f"cached={response.cached} fallback={response.fallback_used}[/]"
    )
    sys.exit(EXIT_CODE_PASS)


async def _run_chat(prompt: str, task: str, settings: OrchestratorConfig):
    async with create_orchestrator(settings) as orchestrator:
        return await orchestrator.chat([{"role": "user", "content": prompt}], task)


def _format_currency(amount: float, places: int = 2) -> str:
    """Format currency with proper symbols and formatting."""
    return f"${abs(amount):,.{places}f}"


if __name__ == "__main__":
    app()
