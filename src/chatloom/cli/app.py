"""Main CLI application using Typer."""
import asyncio
import base64
import mimetypes
import signal
from contextlib import contextmanager
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from ..catalog import ModelCatalog
from ..config import configure_logging
from ..llm.models import BaseModelFamily
from ..notifications import Notification, NotificationChannel
from ..sessions import ChatMessage, ChatSession
from .providers import build_orchestrator, get_preference_store, get_session_store

# Load environment variables
load_dotenv()

# Create Typer app
app = typer.Typer(
    name="chatloom",
    help="Multi-provider chat client with streaming, tools and persisted sessions",
    no_args_is_help=True,
    add_completion=True,
)

# Console for rich output
console = Console()


@app.callback()
def main_options(
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        "-l",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
):
    """Configure logging for every command."""
    configure_logging(log_level)


def _image_reference(image: str | None) -> str | None:
    """Turn a local image file into a data URL; URLs pass through."""
    if not image or image.startswith(("http://", "https://", "data:")):
        return image
    path = Path(image)
    if not path.is_file():
        console.print(f"[red]Error: image not found: {image}[/red]")
        raise typer.Exit(code=1)
    media_type = mimetypes.guess_type(path.name)[0] or "image/png"
    data = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{media_type};base64,{data}"


@app.command()
def models(
    ollama: bool = typer.Option(
        False,
        "--ollama",
        help="Also list models installed on the Ollama server"
    )
):
    """List the models available to assistants."""
    async def _models():
        catalog = ModelCatalog()
        if ollama:
            preferences = await get_preference_store().get()
            await catalog.refresh_ollama_models(preferences.ollama_base_url)

        table = Table(title="Models")
        table.add_column("Key", style="bold cyan")
        table.add_column("Name")
        table.add_column("Family")
        table.add_column("Context", justify="right")
        table.add_column("Max output", justify="right")
        table.add_column("Plugins")

        for model in catalog.models:
            name = f"{model.name} [green](new)[/green]" if model.is_new else model.name
            table.add_row(
                model.key,
                name,
                model.base_model.value,
                str(model.tokens),
                str(model.max_output_tokens),
                ", ".join(model.plugins) or "-",
            )

        console.print(table)

    asyncio.run(_models())


@app.command()
def sessions():
    """List stored chat sessions."""
    async def _sessions():
        store = get_session_store()
        try:
            await store.connect()
            items = await store.list_sessions()

            if not items:
                console.print("[dim]No sessions yet. Start one with: chatloom chat[/dim]")
                return

            table = Table(title="Sessions")
            table.add_column("ID", style="bold cyan")
            table.add_column("Title")
            table.add_column("Messages", justify="right")
            table.add_column("Updated")

            for session in items:
                table.add_row(
                    session.id,
                    session.title or "-",
                    str(len(session.messages)),
                    session.updated_at.strftime("%Y-%m-%d %H:%M"),
                )

            console.print(table)
        finally:
            await store.disconnect()

    asyncio.run(_sessions())


@app.command(name="set-key")
def set_key(
    family: BaseModelFamily = typer.Argument(..., help="Model family the key is for"),
    key: str = typer.Argument(..., help="API key"),
):
    """Store a user API key (anthropic; openai and gemini come from the environment)."""
    async def _set_key():
        store = get_preference_store()
        preferences = await store.get()
        api_keys = {**preferences.api_keys, family.value: key}
        await store.save(preferences.model_copy(update={"api_keys": api_keys}))
        console.print(f"[green]Saved {family.value} key to {store.path}[/green]")

    asyncio.run(_set_key())


class _StreamPrinter:
    """Prints the growing assistant output of one message."""

    def __init__(self) -> None:
        self.message_id: str | None = None
        self._printed = 0
        self._tools: dict[str, bool] = {}

    def reset(self) -> None:
        self.message_id = None
        self._printed = 0
        self._tools = {}

    def __call__(self, session: ChatSession, message: ChatMessage) -> None:
        if self.message_id is None:
            self.message_id = message.id
        if message.id != self.message_id:
            return

        for record in message.tools:
            if self._tools.get(record.tool_name) == record.tool_loading:
                continue
            self._tools[record.tool_name] = record.tool_loading
            if record.tool_loading:
                console.print(f"\n[dim]Using {record.tool_name}...[/dim]")
            elif record.render_args and "image" in record.render_args:
                console.print(f"\n[magenta]Image:[/magenta] {record.render_args['image']}")

        text = message.raw_ai or ""
        if len(text) > self._printed:
            console.print(text[self._printed:], end="", markup=False, highlight=False)
            self._printed = len(text)


@contextmanager
def _interrupt_stops_generation(loop: asyncio.AbstractEventLoop, orchestrator, session_id: str):
    """Route Ctrl-C to stop_generation for the duration of one generation."""
    try:
        loop.add_signal_handler(signal.SIGINT, orchestrator.stop_generation, session_id)
    except NotImplementedError:
        yield
        return
    try:
        yield
    finally:
        loop.remove_signal_handler(signal.SIGINT)


def _print_notification(notification: Notification) -> None:
    style = "red" if notification.variant == "destructive" else "yellow"
    console.print(f"\n[{style}]{notification.title}:[/{style}] {notification.description}")


@app.command()
def chat(
    message: str | None = typer.Argument(
        None,
        help="Message to send (omit for interactive mode)"
    ),
    session_id: str | None = typer.Option(
        None,
        "--session",
        "-s",
        help="Session to continue (a new one is created when omitted)"
    ),
    assistant: str | None = typer.Option(
        None,
        "--assistant",
        "-a",
        help="Assistant key (default: preferred assistant)"
    ),
    context: str | None = typer.Option(
        None,
        "--context",
        "-c",
        help="Context the answer must be based on"
    ),
    image: str | None = typer.Option(
        None,
        "--image",
        "-i",
        help="Image file or URL to attach"
    ),
):
    """Chat with an assistant. Ctrl-C stops the current generation."""
    async def _chat():
        store = get_session_store()
        preference_store = get_preference_store()
        notifications = NotificationChannel()
        notifications.subscribe(_print_notification)

        catalog = ModelCatalog()
        preferences = await preference_store.get()
        await catalog.refresh_ollama_models(preferences.ollama_base_url)

        orchestrator = build_orchestrator(store, preference_store, catalog, notifications)
        printer = _StreamPrinter()
        orchestrator.synchronizer.subscribe(printer)

        try:
            await store.connect()

            session = await store.get_session(session_id) if session_id else None
            if session is None:
                if session_id:
                    console.print(f"[red]Error: session not found: {session_id}[/red]")
                    raise typer.Exit(code=1)
                session = await store.create_session()
                console.print(f"[dim]Session {session.id}[/dim]")

            loop = asyncio.get_running_loop()

            async def _send(text: str, turn_context: str | None, turn_image: str | None) -> None:
                printer.reset()
                console.print("[bold green]Assistant:[/bold green] ", end="")
                with _interrupt_stops_generation(loop, orchestrator, session.id):
                    result = await orchestrator.handle_run_model(
                        session.id,
                        text,
                        assistant_key=assistant,
                        context=turn_context,
                        image=turn_image,
                    )
                if result is not None and result.stop_reason is not None:
                    if result.stop_reason.value == "apikey":
                        console.print("\n[red]API key missing. Run: chatloom set-key <family> <key>[/red]")
                    elif result.stop_reason.value == "cancel":
                        console.print("\n[dim](stopped)[/dim]")
                console.print()

            if message:
                await _send(message, context, _image_reference(image))
                return

            console.print("[bold cyan]Chatloom Interactive Chat[/bold cyan]")
            console.print("[dim]Type 'exit', 'quit', or 'q' to leave[/dim]\n")

            first_turn = True
            while True:
                try:
                    user_input = await asyncio.to_thread(console.input, "[bold yellow]You:[/bold yellow] ")
                except EOFError:
                    console.print("\n[dim]Goodbye![/dim]")
                    break

                if not user_input.strip():
                    continue
                if user_input.strip().lower() in ('exit', 'quit', 'q'):
                    console.print("[dim]Goodbye![/dim]")
                    break

                # Context and image only apply to the first turn
                await _send(
                    user_input,
                    context if first_turn else None,
                    _image_reference(image) if first_turn else None,
                )
                first_turn = False

        finally:
            await store.disconnect()

    asyncio.run(_chat())


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
