"""Command line entry point: run the HTTP service or send a single prompt."""

import asyncio
import logging
import sys
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config.ai_config import AIServiceConfig
from ..llm.base import AIServiceError
from ..models.llm_models import (
    CompletionRequest,
    CompletionResponse,
    ComplexityTier,
    Message,
    PriorityTier,
    ProviderName,
    QueuedAcknowledgement,
)
from ..utils.logging_utils import configure_logging

logger = logging.getLogger(__name__)

console = Console()


@click.group()
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose logging",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Adaptive AI Service - cached, batched, multi-provider completions."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@cli.command()
@click.option("--host", help="Bind address (default: AI_SERVICE_HOST)")
@click.option("--port", type=int, help="Port (default: AI_SERVICE_PORT)")
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int]) -> None:
    """
    Run the HTTP service.

        adaptive-ai serve --port 5200
    """
    import uvicorn

    from ..api.app import create_app

    config = AIServiceConfig()
    configure_logging(
        "DEBUG" if ctx.obj["verbose"] else config.log_level,
        config.log_file,
    )

    app = create_app(config=config)
    uvicorn.run(
        app,
        host=host or config.host,
        port=port or config.port,
        log_level="info",
    )


@cli.command()
@click.argument("prompt")
@click.option("--system", "system_prompt", help="Optional system message")
@click.option("--user", "user_id", default="cli", show_default=True, help="User id")
@click.option(
    "--complexity",
    type=click.Choice([t.value for t in ComplexityTier]),
    help="Skip classification and use this tier",
)
@click.option(
    "--priority",
    type=click.Choice([p.value for p in PriorityTier]),
    default=PriorityTier.CRITICAL.value,
    show_default=True,
    help="Request priority",
)
@click.option(
    "--provider",
    type=click.Choice([p.value for p in ProviderName]),
    help="Preferred provider",
)
@click.option("--fresh", is_flag=True, help="Bypass the cache")
@click.pass_context
def ask(
    ctx: click.Context,
    prompt: str,
    system_prompt: Optional[str],
    user_id: str,
    complexity: Optional[str],
    priority: str,
    provider: Optional[str],
    fresh: bool,
) -> None:
    """
    Send one prompt through the service and print the answer.

        adaptive-ai ask "What are some healthy snacks?"
    """
    verbose = ctx.obj["verbose"]
    configure_logging("DEBUG" if verbose else "WARNING")

    messages = []
    if system_prompt:
        messages.append(Message(role="system", content=system_prompt))
    messages.append(Message(role="user", content=prompt))

    request = CompletionRequest(
        user_id=user_id,
        messages=messages,
        complexity=complexity,
        priority=priority,
        force_fresh=fresh,
        preferred_provider=provider,
    )

    try:
        response = asyncio.run(run_ask(request))
    except KeyboardInterrupt:
        return
    except AIServiceError as e:
        if verbose:
            logger.exception("Request failed")
        console.print(f"[bold red]Error ({e.code}):[/bold red] {e}")
        sys.exit(1)

    render_completion(response)


async def run_ask(request: CompletionRequest) -> CompletionResponse:
    """
    Run one request through a short-lived service.

    GOTCHA: Batched priorities are awaited so the CLI always prints an answer
    """
    from ..services.completion_service import AdaptiveAIService

    service = AdaptiveAIService()
    service.start()
    try:
        result = await service.generate_completion(request)
        if isinstance(result, QueuedAcknowledgement):
            console.print(
                f"[dim]Queued at position {result.queue_position} "
                f"(~{result.estimated_wait_seconds:.0f}s)[/dim]"
            )
            result = await service.wait_for_result(result.request_id)
        return result
    finally:
        await service.shutdown()


def render_completion(response: CompletionResponse) -> None:
    """Print a response panel and its metadata."""
    console.print(Panel(response.content, title="Response", border_style="cyan"))

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Provider", f"{response.provider} ({response.model})")
    table.add_row("Complexity", response.complexity)
    table.add_row("Time", f"{response.processing_time_ms}ms")
    table.add_row("Tokens", f"{response.input_tokens} in / {response.output_tokens} out")
    if response.cached:
        table.add_row("Cache", f"{response.cache_type} ({response.similarity:.2f})")
    if response.fallback_used:
        table.add_row("Fallback", "yes")
    console.print(table)


def main() -> None:
    """Console script entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
