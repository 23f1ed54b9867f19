"""Command-line interface for Research Agents.

Entry point for chatting with the active AI provider, running the research
planner and managing stored research plans.

Example:
    >>> # List initialized providers
    >>> python -m src.cli providers
    >>> # Plan research with a forced provider
    >>> python -m src.cli --provider claude plan "home battery storage"
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

import typer

from src.agents import Agent, ResearchPlannerAgent
from src.config import Config, ConfigError
from src.utils.exit_codes import (
    EXIT_CONFIG_ERROR,
    EXIT_INPUT_ERROR,
    EXIT_IO_ERROR,
    EXIT_SUCCESS,
    HANDLED_ERRORS,
    exit_code_for,
    get_exit_code_description,
    log_exit,
)
from src.utils.llm import ProviderManager
from src.utils.llm_adapters.base import ChatMessage, ChatOptions
from src.utils.llm_errors import NoActiveProviderError
from src.utils.logging_config import setup_logging
from src.utils.prompts import PromptRenderer
from src.utils.storage import ResearchPlanStore, StorageIOError

logger = logging.getLogger(__name__)

T = TypeVar("T")

EXIT_WORDS = {"exit", "quit"}
ACCEPT_WORDS = {"accept"}

app = typer.Typer(
    name="research-agents",
    help="Research Agents - multi-provider AI research planning",
)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    provider: str | None = typer.Option(
        None, "--provider", "-p", help="Use only this provider (openai, gemini, claude)"
    ),
) -> None:
    """Research Agents CLI - multi-provider AI research planning."""
    setup_logging(verbose=verbose)
    ctx.obj = {"provider": provider}


def _load_config() -> Config:
    try:
        return Config.load()
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=EXIT_CONFIG_ERROR)


def _provider_override(ctx: typer.Context) -> str | None:
    if ctx.obj is None:
        return None
    override: str | None = ctx.obj.get("provider")
    return override


async def create_manager(config: Config, provider_override: str | None = None) -> ProviderManager:
    """Build and initialize a ProviderManager for CLI commands.

    A --provider override or manual mode forces a single provider; otherwise
    every provider with a credential is initialized.

    Args:
        config: Application configuration.
        provider_override: Provider name from the command line.

    Returns:
        Manager with an active provider.

    Raises:
        UnsupportedProviderError: Unknown provider name.
        ProviderInitError: Forced provider failed to initialize.
        NoActiveProviderError: No provider could be initialized.
    """
    manager = ProviderManager.from_config(config)

    forced = provider_override
    if forced is None and config.providers.mode == "manual":
        forced = config.providers.forced_provider

    if forced is not None:
        await manager.initialize_single_provider(forced)
    else:
        await manager.initialize_all()

    if manager.active_provider_name is None:
        raise NoActiveProviderError(
            "No AI provider could be initialized. Check your API keys in .env file."
        )
    return manager


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a command coroutine, mapping errors to exit codes."""
    try:
        return asyncio.run(coro)
    except HANDLED_ERRORS as e:
        code = exit_code_for(e)
        log_exit(logger, code, str(e))
        typer.echo(f"{get_exit_code_description(code)}: {e}", err=True)
        raise typer.Exit(code=code)


def _open_store(config: Config) -> ResearchPlanStore:
    store = ResearchPlanStore(config.database.path)
    try:
        store.init()
    except StorageIOError as e:
        typer.echo(f"Storage error: {e}", err=True)
        raise typer.Exit(code=EXIT_IO_ERROR)
    return store


@app.command()
def providers(ctx: typer.Context) -> None:
    """Show initialized providers and their capabilities."""
    config = _load_config()
    manager = _run(create_manager(config, _provider_override(ctx)))

    for name, info in manager.provider_info().items():
        marker = "*" if info["is_active"] else " "
        typer.echo(
            f"{marker} {name} ({info['name']}): "
            f"tools={'yes' if info['supports_tools'] else 'no'}, "
            f"images={'yes' if info['supports_image_generation'] else 'no'}, "
            f"models: {', '.join(info['available_models'])}"
        )

    raise typer.Exit(code=EXIT_SUCCESS)


@app.command()
def chat(
    ctx: typer.Context,
    message: str,
    model: str | None = typer.Option(None, "--model", "-m", help="Model override"),
) -> None:
    """Send a single message and print the reply.

    Args:
        message: User message.
    """
    config = _load_config()
    content = _run(_chat(config, _provider_override(ctx), message, model))
    typer.echo(content)
    raise typer.Exit(code=EXIT_SUCCESS)


async def _chat(
    config: Config, provider_override: str | None, message: str, model: str | None
) -> str:
    manager = await create_manager(config, provider_override)
    renderer = PromptRenderer(config)
    agent = Agent(manager, model=model, preferred_provider=config.agent.preferred_provider)

    messages = [
        ChatMessage(role="system", content=renderer.render("chat_system")),
        ChatMessage(role="user", content=message),
    ]
    response = await agent.chat_completion(messages, ChatOptions())
    logger.debug(
        "Reply from %s (%s), tokens: %d",
        response.provider,
        response.model,
        response.usage.total_tokens,
    )
    return response.content


@app.command()
def plan(
    ctx: typer.Context,
    topic: str | None = typer.Argument(None, help="Research topic"),
) -> None:
    """Plan web research interactively.

    Type 'accept' to finalize and store the plan, 'exit' to quit.

    Args:
        topic: Initial research topic; asked for if omitted.
    """
    config = _load_config()
    store = _open_store(config)
    _run(_plan_session(config, _provider_override(ctx), store, topic))
    raise typer.Exit(code=EXIT_SUCCESS)


async def _plan_session(
    config: Config,
    provider_override: str | None,
    store: ResearchPlanStore,
    topic: str | None,
) -> None:
    """Run the interactive planning loop."""
    manager = await create_manager(config, provider_override)
    agent = ResearchPlannerAgent(
        manager,
        PromptRenderer(config),
        store,
        preferred_provider=config.agent.preferred_provider,
        max_tool_rounds=config.agent.max_tool_rounds,
    )

    if not topic:
        topic = await asyncio.to_thread(typer.prompt, "What would you like to research?")
    typer.echo(await agent.plan_topic(topic))

    while True:
        user_input = (await asyncio.to_thread(typer.prompt, "You")).strip()
        command = user_input.lower()

        if command in EXIT_WORDS:
            typer.echo("Goodbye")
            return

        if command in ACCEPT_WORDS:
            final_plan = await agent.finalize()
            typer.echo(final_plan)
            stored = store.add(agent.initial_input or topic, final_plan)
            typer.echo(f"Research plan stored with id {stored.id}")
            return

        typer.echo(await agent.respond(user_input))


@app.command()
def plans() -> None:
    """List stored research plans."""
    config = _load_config()
    store = _open_store(config)

    try:
        stored = store.list_plans()
    except StorageIOError as e:
        typer.echo(f"Storage error: {e}", err=True)
        raise typer.Exit(code=EXIT_IO_ERROR)

    if not stored:
        typer.echo("No research plans stored")
    for item in stored:
        typer.echo(f"[{item.id}] {item.short_summary}")

    raise typer.Exit(code=EXIT_SUCCESS)


@app.command("delete-plan")
def delete_plan(plan_id: int = typer.Argument(..., help="Research plan id")) -> None:
    """Delete a stored research plan.

    Args:
        plan_id: Research plan id as shown by 'plans'.
    """
    config = _load_config()
    store = _open_store(config)

    try:
        deleted = store.delete(plan_id)
    except StorageIOError as e:
        typer.echo(f"Storage error: {e}", err=True)
        raise typer.Exit(code=EXIT_IO_ERROR)

    if not deleted:
        typer.echo(f"Research plan {plan_id} not found", err=True)
        raise typer.Exit(code=EXIT_INPUT_ERROR)

    typer.echo(f"Research plan {plan_id} deleted")
    raise typer.Exit(code=EXIT_SUCCESS)


@app.command()
def image(
    ctx: typer.Context,
    prompt: str,
    size: str = typer.Option("1024x1024", "--size", help="Image size"),
    model: str = typer.Option("dall-e-3", "--model", "-m", help="Image model"),
) -> None:
    """Generate an image and print its URL.

    Args:
        prompt: Image description.
    """
    config = _load_config()
    result = _run(_image(config, _provider_override(ctx), prompt, size, model))

    typer.echo(result.url or "")
    if result.revised_prompt:
        typer.echo(f"Revised prompt: {result.revised_prompt}")
    raise typer.Exit(code=EXIT_SUCCESS)


async def _image(
    config: Config, provider_override: str | None, prompt: str, size: str, model: str
) -> Any:
    manager = await create_manager(config, provider_override)
    return await manager.generate_image(prompt, model=model, size=size)


if __name__ == "__main__":
    app()
