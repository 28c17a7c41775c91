"""Command-line interface for ollama-completion.

Commands:
    - complete: Emit candidates for a command line (called by bash)
    - refresh: Refresh the command metadata snapshot in the foreground
    - clear-cache: Remove every cached artifact
    - status: Show cache artifacts and their freshness
    - check: Validate required tools
    - bash: Print the bash registration script
    - config show / config init: Inspect or create the config file

Public API:
    main: Click group for 'ollama-completion'
"""

import logging
import sys
from pathlib import Path

import click
import tomlkit
from rich.console import Console
from rich.table import Table

from ollama_completion import __version__
from ollama_completion.cache.store import MetadataStore, RefreshOutcome
from ollama_completion.config import (
    CompletionConfig,
    get_config_path,
    load_config,
    load_config_or_default,
    save_config,
)
from ollama_completion.engine import CompletionEngine
from ollama_completion.errors import ConfigError, MissingDependency
from ollama_completion.health import check_dependencies, require_dependencies
from ollama_completion.logging_config import configure_logging
from ollama_completion.resolver import CompletionKind

logger = logging.getLogger(__name__)

console = Console()

PROG_NAME = "ollama-completion"

BASH_SCRIPT = """\
# bash completion for ollama, generated by %(prog)s %(version)s
_ollama_completion() {
    local IFS=$'\\n'
    local response completion type value
    response=$(%(prog)s complete --cword "$COMP_CWORD" -- "${COMP_WORDS[@]}" 2>/dev/null)
    COMPREPLY=()

    for completion in $response; do
        IFS=',' read -r type value <<< "$completion"
        if [[ $type == 'file' ]]; then
            COMPREPLY=($(compgen -f -- "${COMP_WORDS[COMP_CWORD]}"))
            compopt -o filenames 2>/dev/null
        elif [[ $type == 'plain' ]]; then
            COMPREPLY+=("$value")
        fi
    done

    return 0
}

complete -o nosort -F _ollama_completion %(target)s 2>/dev/null || \\
    complete -F _ollama_completion %(target)s
"""


def _load(ctx: click.Context, lenient: bool = False) -> CompletionConfig:
    """Load config for a subcommand; lenient mode never fails."""
    config_path = ctx.obj["config_path"]
    if lenient:
        config = load_config_or_default(config_path)
    else:
        try:
            config = load_config(config_path)
        except ConfigError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
    if ctx.obj["debug"]:
        config.debug = True
    configure_logging(config.debug, config.debug_log)
    return config


def format_completion(kind: CompletionKind, candidates: tuple[str, ...]) -> list[str]:
    """Render candidates as bash protocol lines ("plain,<value>" / "file,")."""
    if kind is CompletionKind.PATHS:
        return ["file,"]
    return [f"plain,{candidate}" for candidate in candidates]


@click.group()
@click.version_option(__version__, prog_name=PROG_NAME)
@click.option("--debug", is_flag=True, help="Write debug trace to stderr")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Config file path")
@click.pass_context
def main(ctx: click.Context, debug: bool, config_path: str | None) -> None:
    """Context-aware bash completion for the ollama CLI.

    \b
    Examples:
        eval "$(ollama-completion bash)"     # Register completion
        ollama-completion status             # Inspect the cache
        ollama-completion refresh --force    # Re-fetch command metadata
    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = config_path


@main.command()
@click.option("--cword", type=int, required=True, help="Index of the word under the cursor")
@click.argument("words", nargs=-1)
@click.pass_context
def complete(ctx: click.Context, cword: int, words: tuple[str, ...]) -> None:
    """Print completion candidates for WORDS (called by the bash function)."""
    config = _load(ctx, lenient=True)
    try:
        config_path = ctx.obj["config_path"]
        engine = CompletionEngine(config, config_path=Path(config_path) if config_path else None)
        result = engine.complete(list(words), cword)
    except Exception as e:
        # Nothing may reach the interactive shell
        logger.debug(f"Unexpected completion error: {e}", exc_info=True)
        return
    for line in format_completion(result.kind, result.candidates):
        click.echo(line)


@main.command()
@click.option("--version", "version", help="ollama version to refresh (default: detected)")
@click.option("--force", is_flag=True, help="Ignore freshness and the fetch rate limit")
@click.pass_context
def refresh(ctx: click.Context, version: str | None, force: bool) -> None:
    """Refresh the command metadata snapshot now."""
    config = _load(ctx)
    engine = CompletionEngine(config)
    result = engine.refresh_commands(version, force=force)

    messages = {
        RefreshOutcome.FRESH: ("Snapshot already fresh", "green"),
        RefreshOutcome.REFRESHED: ("Snapshot refreshed", "green"),
        RefreshOutcome.RATE_LIMITED: ("Skipped: last fetch too recent (use --force)", "yellow"),
        RefreshOutcome.LOCK_BUSY: ("Skipped: another refresh is running", "yellow"),
        RefreshOutcome.FAILED: ("Refresh failed, previous snapshot kept", "red"),
        RefreshOutcome.DISABLED: ("Cache unavailable, snapshot not saved", "yellow"),
        RefreshOutcome.SKIPPED: ("Skipped: system low on disk space or heavily loaded", "yellow"),
    }
    text, color = messages[result.outcome]
    click.echo(click.style(text, fg=color))
    if result.outcome is RefreshOutcome.FAILED:
        sys.exit(1)


@main.command("clear-cache")
@click.pass_context
def clear_cache(ctx: click.Context) -> None:
    """Remove all cached metadata, model lists and markers."""
    config = _load(ctx)
    removed = MetadataStore(config).invalidate_all()
    click.echo(f"Removed {removed} cache file(s) from {config.cache_path}")


def _format_age(seconds: float) -> str:
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    if seconds < 86400:
        return f"{seconds // 3600}h {(seconds % 3600) // 60}m"
    return f"{seconds // 86400}d {(seconds % 86400) // 3600}h"


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show cached artifacts and their freshness."""
    config = _load(ctx)
    store = MetadataStore(config)

    if not store.available:
        click.echo(f"Cache directory unavailable: {config.cache_path}", err=True)
        sys.exit(1)

    statuses = store.describe()
    if not statuses:
        click.echo(f"Cache is empty ({config.cache_path})")
        return

    table = Table(title=f"Cache: {config.cache_path}", show_header=True, header_style="bold")
    table.add_column("Artifact", style="cyan")
    table.add_column("Age", justify="right")
    table.add_column("State")
    for item in statuses:
        if item.fresh is None:
            state = "[white]marker[/white]"
        elif item.fresh:
            state = "[green]fresh[/green]"
        else:
            state = "[yellow]stale[/yellow]"
        table.add_row(item.name, _format_age(item.age), state)
    console.print(table)


@main.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Validate that the tools completion relies on are installed."""
    config = _load(ctx)
    report = check_dependencies(config)

    for warning in report.warnings:
        click.echo(click.style(f"Warning: {warning}", fg="yellow"))
    if not report.ok:
        click.echo(click.style("Missing required tools:", fg="red"), err=True)
        for item in report.missing:
            click.echo(f"  - {item}", err=True)
        sys.exit(1)
    click.echo(click.style("All required tools available", fg="green"))


@main.command()
@click.option("--target", default="ollama", show_default=True, help="Command to complete")
@click.pass_context
def bash(ctx: click.Context, target: str) -> None:
    """Print the bash registration script.

    \b
    Usage:
        eval "$(ollama-completion bash)"
    """
    config = _load(ctx)
    try:
        require_dependencies(config)
    except MissingDependency as e:
        click.echo(f"Error: {e}", err=True)
        click.echo("Completion not registered.", err=True)
        sys.exit(1)
    click.echo(BASH_SCRIPT % {"prog": PROG_NAME, "version": __version__, "target": target}, nl=False)


@main.group("config")
def config_group() -> None:
    """Inspect or create the configuration file."""


@config_group.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show the effective configuration as TOML."""
    config = _load(ctx)
    click.echo(f"# {get_config_path(ctx.obj['config_path'])}")
    click.echo(tomlkit.dumps(config.to_dict()), nl=False)


@config_group.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
@click.pass_context
def config_init(ctx: click.Context, force: bool) -> None:
    """Write a config file populated with the defaults."""
    config_path = get_config_path(ctx.obj["config_path"])
    if config_path.exists() and not force:
        click.echo(f"Config already exists: {config_path} (use --force)", err=True)
        sys.exit(1)
    if force and config_path.exists():
        config_path.unlink()
    try:
        written = save_config(CompletionConfig(), config_path)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"Wrote {written}")


__all__ = ["format_completion", "main"]
