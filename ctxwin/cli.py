"""CLI entry point for ctxwin"""

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from ctxwin.config.config import Config
from ctxwin.session.context import ContextOverflowError, HistoryOptimizer
from ctxwin.session.session import Session
from ctxwin.session.tokens import TokenEstimator

app = typer.Typer(
    name="ctxwin",
    help="Chat with long conversations kept inside the model's context window",
    add_completion=False,
)
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log optimizer decisions"),
    log_file: Path = typer.Option(Path("ctxwin.log"), "--log-file", help="Where to write logs"),
):
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(),
        ],
    )


def _load_session(session_id: str) -> Session:
    session = Session.load(session_id)
    if not session:
        console.print(f"[red]Session not found:[/red] {session_id}")
        raise typer.Exit(1)
    return session


@app.command()
def chat(
    message: str = typer.Argument(..., help="Message to send"),
    session_id: str = typer.Option(None, "--session", "-s", help="Session to continue"),
    model: str = typer.Option(None, "--model", "-m", help="Model to use"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Send one message and stream the reply"""
    from ctxwin.agent.loop import ConversationTurnController, UnsupportedContentError
    from ctxwin.provider.base import ProviderError

    config = Config.load(config_path)
    session = _load_session(session_id) if session_id else Session.create()

    async def run_chat():
        controller = ConversationTurnController.from_config(session, config, model=model)
        async for chunk in controller.run(message):
            if chunk.type == "text":
                print(chunk.content, end="", flush=True)
            elif chunk.type == "tool_call":
                console.print(f"\n[cyan][Tool: {chunk.name}][/cyan]")
            elif chunk.type == "tool_result":
                preview = chunk.content[:200] + "..." if len(chunk.content) > 200 else chunk.content
                console.print(f"[dim][Result: {preview}][/dim]")
        print()

    try:
        asyncio.run(run_chat())
    except (ContextOverflowError, UnsupportedContentError, ProviderError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[dim]session: {session.id}[/dim]")


@app.command()
def tokens(
    session_id: str = typer.Argument(..., help="Session to inspect"),
):
    """Show the token cost of every message in a session"""
    session = _load_session(session_id)
    estimator = TokenEstimator()

    table = Table(title=f"Tokens for {session.title}")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Role", style="green")
    table.add_column("Tokens", style="magenta", justify="right")

    for i, msg in enumerate(session.messages):
        table.add_row(str(i), msg.role, str(estimator.count_message_tokens(msg)))

    console.print(table)
    console.print(f"Total: {estimator.count_message_list_tokens(session.messages)} tokens")
    if session.summary_cache:
        console.print(
            f"Cached summary covers messages [0, {session.summary_cache.covers_messages_up_to_index})"
        )


@app.command()
def optimize(
    session_id: str = typer.Argument(..., help="Session to optimize"),
    target: int = typer.Option(None, "--target", "-t", help="Override the target token limit"),
    model: str = typer.Option(None, "--model", "-m", help="Model whose context window applies"),
    summarize: bool = typer.Option(False, "--summarize", help="Allow a summarization request"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Dry-run the optimizer on a session without sending anything to the model"""
    from ctxwin.agent.loop import build_system_prompt
    from ctxwin.auth.credentials import CredentialStore
    from ctxwin.session.summarize import Summarizer

    config = Config.load(config_path)
    session = _load_session(session_id)
    info = config.model_info(model or config.model)
    optimizer = HistoryOptimizer(
        summarizer=Summarizer(
            model=config.context.summarization_model,
            base_url=config.context.summarization_base_url,
        )
    )

    result = asyncio.run(optimizer.optimize(
        session.get_messages(),
        build_system_prompt(config.custom_system_prompt),
        model_context_limit=info.context_window,
        target_token_limit=target or config.context.target_token_limit,
        cache=session.summary_cache,
        api_key=CredentialStore().get_api_key("openrouter") if summarize else None,
        summarization_enabled=config.context.summarization_enabled and summarize,
    ))

    console.print(f"Strategy: [cyan]{result.strategy.value}[/cyan]")
    console.print(f"Messages: {len(session.messages)} -> {len(result.history)}")
    console.print(f"Tokens: {result.token_count} (model limit {info.context_window})")
    if result.keep_index is not None:
        console.print(f"Keep boundary: {result.keep_index}")
    if summarize and result.cache_changed(session.summary_cache):
        session.set_summary_cache(result.updated_cache)
        console.print("[green]Summary cache updated[/green]")


@app.command()
def sessions():
    """List saved sessions"""
    saved = Session.list_sessions()
    if not saved:
        console.print("[yellow]No sessions found[/yellow]")
        return

    table = Table(title="Saved Sessions")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="green")
    table.add_column("Messages", justify="right")
    table.add_column("Updated", style="magenta")

    for s in saved:
        table.add_row(s["id"], s["title"], str(s["messages"]), str(s.get("updated_at", "")))

    console.print(table)


if __name__ == "__main__":
    app()
