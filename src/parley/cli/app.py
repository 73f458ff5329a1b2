"""Main CLI application using Typer."""
import asyncio
import contextlib
import signal

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..chat import SendEvent, SendResult, SendState
from ..config import ChatSettings
from ..conversation import AuthorType, Conversation, MessageStore
from ..credentials import DotenvCredentialStore
from ..exceptions import ConversationNotFoundError, ParleyError
from ..llm import CancellationToken
from ..llm.catalog import KNOWN_MODELS, MODEL_INFO_URL, display_name
from ..log import configure_logging
from .providers import Services, get_credentials, open_services, warn_if_missing_key

# Load environment variables
load_dotenv()

# Create Typer app
app = typer.Typer(
    name="parley",
    help="Chat with hosted language models from the terminal",
    no_args_is_help=True,
    add_completion=True,
)
key_app = typer.Typer(help="Manage the provider API key", no_args_is_help=True)
app.add_typer(key_app, name="key")

# Console for rich output
console = Console()

AUTHOR_STYLES = {
    AuthorType.USER: "cyan",
    AuthorType.ASSISTANT: "magenta",
    AuthorType.ERROR: "red",
}


def load_settings(model: str | None = None, temperature: float | None = None) -> ChatSettings:
    """Read settings from the environment, exiting on invalid values."""
    try:
        settings = ChatSettings.from_env(model=model, temperature=temperature)
    except ValidationError as e:
        console.print(f"[red]Invalid settings: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)
    configure_logging(settings.log_level)
    return settings


async def resolve_conversation(store: MessageStore, ref: str) -> Conversation:
    """Find a conversation by id or unique id prefix."""
    try:
        return await store.get_conversation(ref)
    except ConversationNotFoundError:
        matches = [c for c in await store.list_conversations() if c.id.startswith(ref)]
        if len(matches) == 1:
            return matches[0]
        raise


def print_event(event: SendEvent) -> None:
    """Render orchestrator events as they arrive."""
    if event.state is SendState.STREAMING and event.text:
        console.out(event.text, end="", highlight=False)
    elif event.state is SendState.COMPLETED:
        console.print()
        if event.usage is not None:
            console.print(
                f"[dim]{event.usage.prompt_tokens} prompt / "
                f"{event.usage.completion_tokens} completion tokens[/dim]"
            )
    elif event.state is SendState.FAILED and event.message is not None:
        console.print(f"\n[bold red]Error:[/] {escape(event.message.content)}")
    elif event.state is SendState.CANCELLED:
        console.print("\n[yellow]Reply cancelled[/yellow]")


async def send_with_interrupt(services: Services, conversation_id: str, text: str) -> SendResult | None:
    """Send a message; Ctrl-C cancels the reply instead of exiting."""
    loop = asyncio.get_running_loop()
    token = CancellationToken()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    try:
        return await services.orchestrator.send(conversation_id, text, cancel_token=token)
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)


def run(coro) -> None:
    """Run a command coroutine, turning parley errors into a clean exit."""
    try:
        asyncio.run(coro)
    except ParleyError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)


@app.command()
def new(
    name: str = typer.Argument(..., help="Conversation name"),
    prompt: str | None = typer.Option(
        None,
        "--prompt",
        "-p",
        help="System prompt sent before every message"
    ),
):
    """Create a new conversation."""
    settings = load_settings()

    async def _new():
        async with open_services(settings) as services:
            conversation = await services.store.create_conversation(name, system_prompt=prompt)
            console.print(f"[green]Created conversation[/green] {escape(conversation.name)}")
            console.print(f"[dim]ID: {conversation.id}[/dim]")

    run(_new())


@app.command("list")
def list_conversations():
    """List conversations, most recent first."""
    settings = load_settings()

    async def _list():
        async with open_services(settings) as services:
            conversations = await services.store.list_conversations()
            if not conversations:
                console.print("[dim]No conversations yet. Create one with: parley new <name>[/dim]")
                return

            table = Table(title="Conversations")
            table.add_column("ID", style="dim")
            table.add_column("Name", style="bold")
            table.add_column("Messages", justify="right")
            table.add_column("Updated")

            for conversation in conversations:
                messages = await services.store.list_messages(conversation.id)
                table.add_row(
                    conversation.id[:8],
                    escape(conversation.name),
                    str(len(messages)),
                    conversation.updated_at.astimezone().strftime("%Y-%m-%d %H:%M"),
                )
            console.print(table)

    run(_list())


@app.command()
def show(
    conversation: str = typer.Argument(..., help="Conversation ID or ID prefix"),
    search: str | None = typer.Option(
        None,
        "--search",
        "-s",
        help="Only show messages containing this text (case-insensitive)"
    ),
):
    """Show the messages of a conversation."""
    settings = load_settings()

    async def _show():
        async with open_services(settings) as services:
            target = await resolve_conversation(services.store, conversation)
            messages = await services.store.list_messages(target.id)
            if search and len(search) > 1:
                messages = [m for m in messages if search.lower() in m.content.lower()]

            console.print(f"[bold]{escape(target.name)}[/bold] [dim]({target.id})[/dim]")
            if target.system_prompt:
                console.print(Panel(Text(target.system_prompt), title="System prompt", border_style="dim"))
            if not messages:
                console.print("[dim]No messages yet[/dim]")

            for message in messages:
                timestamp = message.timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S")
                console.print(Panel(
                    Text(message.content),
                    title=f"{message.author_type.label} - {timestamp}",
                    title_align="left",
                    border_style=AUTHOR_STYLES[message.author_type],
                ))

    run(_show())


@app.command()
def rename(
    conversation: str = typer.Argument(..., help="Conversation ID or ID prefix"),
    name: str = typer.Argument(..., help="New name"),
):
    """Rename a conversation."""
    settings = load_settings()

    async def _rename():
        async with open_services(settings) as services:
            target = await resolve_conversation(services.store, conversation)
            updated = await services.store.rename_conversation(target.id, name)
            console.print(f"[green]Renamed to[/green] {escape(updated.name)}")

    run(_rename())


@app.command()
def prompt(
    conversation: str = typer.Argument(..., help="Conversation ID or ID prefix"),
    text: str | None = typer.Argument(None, help="New system prompt"),
    clear: bool = typer.Option(False, "--clear", help="Remove the system prompt"),
):
    """Show, set or clear a conversation's system prompt."""
    settings = load_settings()

    async def _prompt():
        async with open_services(settings) as services:
            target = await resolve_conversation(services.store, conversation)
            if clear:
                await services.store.update_system_prompt(target.id, None)
                console.print("[green]System prompt cleared[/green]")
            elif text is not None:
                await services.store.update_system_prompt(target.id, text)
                console.print("[green]System prompt updated[/green]")
            elif target.system_prompt:
                console.print(Panel(Text(target.system_prompt), title="System prompt"))
            else:
                console.print("[dim]No system prompt set[/dim]")

    run(_prompt())


@app.command()
def delete(
    conversation: str = typer.Argument(..., help="Conversation ID or ID prefix"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete a conversation and all of its messages."""
    settings = load_settings()

    async def _delete():
        async with open_services(settings) as services:
            target = await resolve_conversation(services.store, conversation)
            if not yes and not typer.confirm(f"Delete '{target.name}' and all its messages?"):
                console.print("[dim]Aborted.[/dim]")
                return
            await services.store.delete_conversation(target.id)
            console.print(f"[green]Deleted[/green] {escape(target.name)}")

    run(_delete())


@app.command()
def send(
    conversation: str = typer.Argument(..., help="Conversation ID or ID prefix"),
    text: str = typer.Argument(..., help="Message to send"),
    model: str | None = typer.Option(None, "--model", "-m", help="Model to use"),
    temperature: float | None = typer.Option(
        None,
        "--temperature",
        "-t",
        min=0.0,
        max=2.0,
        help="Sampling temperature (0-2)"
    ),
):
    """Send one message and stream the reply."""
    settings = load_settings(model=model, temperature=temperature)

    async def _send():
        async with open_services(settings) as services:
            warn_if_missing_key(services, console)
            target = await resolve_conversation(services.store, conversation)
            services.orchestrator.subscribe(print_event)
            result = await send_with_interrupt(services, target.id, text)
            if result is None:
                console.print("[dim]Nothing to send[/dim]")
            elif result.state is SendState.FAILED:
                raise typer.Exit(code=1)

    run(_send())


@app.command()
def chat(
    conversation: str = typer.Argument(..., help="Conversation ID or ID prefix"),
    model: str | None = typer.Option(None, "--model", "-m", help="Model to use"),
    temperature: float | None = typer.Option(
        None,
        "--temperature",
        "-t",
        min=0.0,
        max=2.0,
        help="Sampling temperature (0-2)"
    ),
):
    """Chat interactively. Ctrl-C stops a reply, Ctrl-D or /exit quits."""
    settings = load_settings(model=model, temperature=temperature)

    async def _chat():
        async with open_services(settings) as services:
            warn_if_missing_key(services, console)
            target = await resolve_conversation(services.store, conversation)
            services.orchestrator.subscribe(print_event)
            console.print(
                f"[bold]{escape(target.name)}[/bold] "
                f"[dim]({display_name(settings.model)}, temperature {settings.temperature})[/dim]"
            )

            while True:
                try:
                    text = console.input("[bold cyan]You:[/] ")
                except (EOFError, KeyboardInterrupt):
                    console.print()
                    break
                if text.strip() in ("/exit", "/quit"):
                    break
                if not text.strip():
                    continue

                console.print("[bold magenta]Assistant:[/] ", end="")
                await send_with_interrupt(services, target.id, text)

    run(_chat())


@app.command()
def models(
    known: bool = typer.Option(False, "--known", help="List built-in model names without calling the API"),
):
    """List the models available to your API key."""
    settings = load_settings()

    if known:
        table = Table(title="Known models")
        table.add_column("Model", style="bold")
        table.add_column("Name")
        for model_id, name in KNOWN_MODELS.items():
            table.add_row(model_id, name)
        console.print(table)
        console.print(f"[dim]More information: {MODEL_INFO_URL}[/dim]")
        return

    async def _models():
        async with open_services(settings) as services:
            model_ids = await services.provider.list_models()
            table = Table(title=f"Models ({len(model_ids)})")
            table.add_column("Model", style="bold")
            table.add_column("Name")
            for model_id in model_ids:
                table.add_row(model_id, KNOWN_MODELS.get(model_id, ""))
            console.print(table)

    run(_models())


@key_app.command("set")
def key_set(
    value: str = typer.Option(
        ...,
        prompt="API key",
        hide_input=True,
        help="The API key (prompted for when omitted)"
    ),
):
    """Store the API key."""
    settings = load_settings()
    if settings.credential_backend == "memory":
        console.print(
            "[red]Error: the memory credential backend does not keep keys between runs.[/red] "
            "Set PARLEY_CREDENTIAL_BACKEND to 'env' or 'dotenv'."
        )
        raise typer.Exit(code=1)
    if settings.credential_backend == "env":
        # Written to the .env file that load_dotenv reads at start-up
        store = DotenvCredentialStore(settings.credential_path)
    else:
        store = get_credentials(settings)

    if not value.strip():
        console.print("[red]Error: the API key cannot be empty[/red]")
        raise typer.Exit(code=1)

    store.set(settings.credential_name, value.strip())
    location = f" in {store.path}" if isinstance(store, DotenvCredentialStore) else ""
    console.print(f"[green]Saved {settings.credential_name}{location}[/green]")


@key_app.command("verify")
def key_verify():
    """Check the API key by listing models."""
    settings = load_settings()

    async def _verify():
        async with open_services(settings) as services:
            model_ids = await services.provider.list_models()
            console.print(f"[green]API key is valid[/green] [dim]({len(model_ids)} models available)[/dim]")

    run(_verify())


def main() -> None:
    app()


if __name__ == "__main__":
    main()
