"""CLI commands for SupportBot."""

import asyncio
import sys
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from supportbot import __version__, __logo__

app = typer.Typer(
    name="supportbot",
    help=f"{__logo__} SupportBot - debounced auto-replies for support chats",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} SupportBot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """SupportBot - debounced auto-replies for support chats."""
    pass


def setup_logging(debug: bool, log_dir: Path) -> None:
    """Console sink plus a daily rotated file sink."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if debug else "INFO")

    log_dir.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_dir / "supportbot-{time:YYYY-MM-DD}.log",
        level="DEBUG" if debug else "INFO",
        rotation="00:00",
        retention=10,
        format="[{time:YYYY-MM-DD HH:mm:ss.SSS} {level: <8}] [{name}] {message}",
    )


# ============================================================================
# Run
# ============================================================================


@app.command()
def run(
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """Connect to Discord and start answering questions."""
    from supportbot.config.loader import load_config
    from supportbot.channels.discord import DiscordChannel
    from supportbot.conversation.engine import ConversationEngine
    from supportbot.providers.litellm_provider import LiteLLMProvider

    config = load_config(config_path)
    setup_logging(debug or config.debug, config.log_path)

    if not config.discord.token:
        console.print("[red]No Discord token configured.[/red]")
        console.print("Set [cyan]discord.token[/cyan] in the config or SUPPORTBOT_DISCORD__TOKEN.")
        raise typer.Exit(1)

    provider = LiteLLMProvider(
        api_key=config.provider.api_key or None,
        api_base=config.provider.api_base,
        default_model=config.provider.model,
        fallback_models=config.provider.fallback_models,
        cooldown_seconds=config.provider.cooldown_seconds,
    )
    engine = ConversationEngine(
        provider=provider,
        scheduling=config.scheduling,
        usage=config.usage,
        max_tokens=config.provider.max_tokens,
        temperature=config.provider.temperature,
    )
    channel = DiscordChannel(config.discord, engine, usage=config.usage)

    async def serve():
        await engine.start()
        try:
            await channel.start()
        finally:
            await channel.stop()
            await engine.stop()
            await engine.prompt_builder.close()

    console.print(f"{__logo__} Starting SupportBot with model [cyan]{config.provider.model}[/cyan]")
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        console.print("\nGoodbye!")


# ============================================================================
# Config
# ============================================================================


@app.command("init")
def init_config(
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
):
    """Write a default configuration file."""
    from supportbot.config.loader import get_config_path, save_config
    from supportbot.config.schema import Config

    path = config_path or get_config_path()
    if path.exists():
        console.print(f"[yellow]Config already exists at {path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    save_config(Config(), path)
    console.print(f"[green]✓[/green] Created config at {path}")
    console.print("\nNext steps:")
    console.print("  1. Add your Discord bot token and provider API key")
    console.print("  2. Run: [cyan]supportbot run[/cyan]")


@app.command("config")
def show_config(
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
):
    """Show the effective scheduling and usage policy."""
    from supportbot.config.loader import load_config

    config = load_config(config_path)

    table = Table(title="SupportBot Policy")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    scheduling = config.scheduling
    table.add_row("Model", config.provider.model)
    table.add_row("Quiet period", f"{scheduling.quiet_period_seconds:g}s")
    table.add_row("Fast-track delay", f"{scheduling.fast_track_seconds:g}s")
    table.add_row("Retention", f"{scheduling.retention_seconds:g}s")
    table.add_row("Reaper interval", f"{scheduling.reaper_interval_seconds:g}s")
    table.add_row("Strip classification", str(scheduling.strip_classification))
    table.add_row("Remove on failure", str(scheduling.remove_on_failure))
    table.add_row("Usage cap", f"{config.usage.cap} per {config.usage.window_seconds:g}s")
    table.add_row("Token", "[green]✓[/green]" if config.discord.token else "[dim]not set[/dim]")

    console.print(table)


if __name__ == "__main__":
    app()
