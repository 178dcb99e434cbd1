"""
Typer CLI for the codetutor service.

Commands:
    codetutor serve               - Run the HTTP API (uvicorn)
    codetutor db init             - Create database tables
    codetutor db drop             - Drop database tables
    codetutor db check            - Connectivity and missing tables
    codetutor languages           - List supported editor languages
    codetutor learn               - Interactive assessment + tutoring session
    codetutor version             - Show version information

Usage:
    codetutor --help
    codetutor learn --user alice --language python
    codetutor serve --port 8100 --reload
"""

from __future__ import annotations

import sys

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.syntax import Syntax
from rich.table import Table

from config import get_settings

app = typer.Typer(
    help="codetutor CLI: AI programming tutor with an adaptive curriculum",
    no_args_is_help=True,
)

db_app = typer.Typer(help="Database management (init, drop, check)")
app.add_typer(db_app, name="db")

console = Console()

LEARN_COMMANDS = "[dim]/next[/dim] complete topic  [dim]/restart[/dim] redo assessment  [dim]/quit[/dim] leave"


def configure_logging(level: str, log_file: str | None = None) -> None:
    """stderr sink plus an optional rotating file sink."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if log_file:
        logger.add(log_file, level="DEBUG", rotation="10 MB", retention=5, enqueue=True)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level, settings.log_file)


# ========================================
# Server
# ========================================


@app.command("serve")
def serve(
    host: str = typer.Option(None, "--host", help="Bind host (default from settings)"),
    port: int = typer.Option(None, "--port", "-p", help="Bind port (default from settings)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
) -> None:
    """Run the HTTP API."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


# ========================================
# Database
# ========================================


@db_app.command("init")
def db_init() -> None:
    """
    Create all tutor tables.

    Safe to run multiple times (idempotent).
    """
    from src.db.database import init_db

    init_db()
    rprint("[green]✓[/green] Database initialized!")


@db_app.command("drop")
def db_drop(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Drop all tutor tables (destroys assessments, curricula and transcripts)."""
    if not yes and not Confirm.ask("[red]Drop every codetutor table?[/red]", default=False):
        raise typer.Abort()

    from src.db.database import drop_db

    drop_db()
    rprint("[yellow]✓[/yellow] Database tables dropped")


@db_app.command("check")
def db_check() -> None:
    """Check connectivity and report missing tables."""
    from src.db.database import check_connection

    status = check_connection()
    if not status["connected"]:
        rprint(f"[red]✗[/red] Database unreachable: {status.get('error')}")
        raise typer.Exit(code=1)

    missing = status["tables_missing"]
    if missing:
        rprint(f"[yellow]⚠[/yellow] Connected, missing tables: {', '.join(missing)}")
        rprint("  Run: [cyan]codetutor db init[/cyan]")
        raise typer.Exit(code=1)
    rprint("[green]✓[/green] Database connected, all tables present")


# ========================================
# Catalog
# ========================================


@app.command("languages")
def languages() -> None:
    """List supported editor languages."""
    from src.tutor.languages import lessons_for_language, list_languages

    table = Table(title="Supported Languages")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Ext", style="dim")
    table.add_column("Lessons", justify="right")
    table.add_column("Description")

    for language in list_languages():
        table.add_row(
            language.id,
            language.name,
            language.extension,
            str(len(lessons_for_language(language.id))),
            language.description,
        )
    console.print(table)


# ========================================
# Interactive learning
# ========================================


def _print_output(output, language: str) -> None:
    for message in output.messages:
        if message.role.value == "user":
            continue
        console.print(Panel(message.content, title=f"tutor · {message.message_type.value}", border_style="cyan"))
    for code in output.code:
        console.print(Panel(Syntax(code.code, language, line_numbers=True), title="editor", border_style="green"))
        if code.explanation:
            console.print(f"[dim]{code.explanation}[/dim]")


def _print_curriculum(flow) -> None:
    curriculum = flow.curriculum
    table = Table(title=f"Your {flow.language} curriculum ({flow.assessment.adaptive_level.value})")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Topic", style="cyan")
    table.add_column("Type")
    table.add_column("Min", justify="right")
    table.add_column("Status")

    for index, topic in enumerate(curriculum.topics):
        if topic.id in flow.progress.topics_completed:
            status = "[green]done[/green]"
        elif index == curriculum.current_topic_index:
            status = "[yellow]current[/yellow]"
        elif index < curriculum.current_topic_index:
            status = "unlocked"
        else:
            status = "[dim]locked[/dim]"
        table.add_row(str(index + 1), topic.title, topic.type.value, str(topic.estimated_time), status)
    console.print(table)
    console.print(f"[dim]Estimated total: {curriculum.estimated_completion_time} min[/dim]")


def _run_assessment(service, flow, db):
    from src.tutor.models import FlowState

    while flow.state == FlowState.ASSESSMENT:
        question = flow.current_question()
        if question is None:
            break
        console.print(f"\n[bold]{question['index'] + 1}. {question['text']}[/bold]")
        for number, option in enumerate(question["options"], start=1):
            console.print(f"  [cyan]{number}[/cyan]. {option}")
        choice = Prompt.ask(
            "Your answer",
            choices=[str(n) for n in range(1, len(question["options"]) + 1)],
        )

        if len(flow.responses) == len(flow.questions) - 1:
            console.print("[dim]Analyzing your answers and building your curriculum...[/dim]")
        flow, step = service.answer(flow.user_id, flow.language, question["options"][int(choice) - 1])
        db.commit()

        if step.feedback:
            console.print(f"[green]{step.feedback}[/green]")
        if step.error:
            console.print(Panel(step.error, title="Assessment failed", border_style="red"))
            if not Confirm.ask("Try the assessment again?", default=True):
                raise typer.Exit(code=1)
        if step.welcome:
            console.print(Panel(step.welcome, title="Welcome", border_style="green"))
    return flow


@app.command("learn")
def learn(
    user: str = typer.Option(..., "--user", "-u", help="Learner identifier"),
    language: str = typer.Option("python", "--language", "-l", help="Language to learn"),
) -> None:
    """
    Interactive tutoring in the terminal.

    Runs the three-question assessment if needed, shows the curriculum, then
    opens a chat session on the current topic.
    """
    from src.api.deps import get_watcher_config
    from src.db.database import init_db, session_scope
    from src.tutor.assessment import get_assessment_questions
    from src.tutor.errors import TutorAPIError, TutorError
    from src.tutor.gemini import build_clients
    from src.tutor.models import FlowState
    from src.tutor.service import SessionRegistry, TutorService

    settings = get_settings()
    if not settings.has_ai_configured():
        rprint("[red]✗[/red] GEMINI_API_KEY is not set")
        raise typer.Exit(code=1)

    init_db()
    clients = build_clients(settings)

    with session_scope() as db:
        service = TutorService(db, clients, SessionRegistry(), watcher_config=get_watcher_config())
        try:
            flow = service.start_flow(user, language)
        except TutorError as exc:
            rprint(f"[red]✗[/red] {exc}")
            raise typer.Exit(code=1)
        db.commit()

        if flow.state == FlowState.ASSESSMENT:
            intro = get_assessment_questions(flow.language)["intro"]
            console.print(Panel(intro, title=f"codetutor · {flow.language}", border_style="cyan"))
            flow = _run_assessment(service, flow, db)

        _print_curriculum(flow)
        if flow.state == FlowState.TOPIC_COMPLETED:
            rprint("[green]✓[/green] You finished this curriculum. Use /restart to take a new assessment.")

        try:
            output = service.start_session(user, flow.language)
        except TutorAPIError as exc:
            rprint(f"[red]✗[/red] {exc.user_message}")
            raise typer.Exit(code=1)
        db.commit()
        session_id = output.session_id
        _print_output(output, flow.language)
        console.print(LEARN_COMMANDS)

        while True:
            text = Prompt.ask("[bold cyan]you[/bold cyan]").strip()
            if not text:
                continue
            if text == "/quit":
                break

            try:
                if text == "/next":
                    flow, topic = service.advance(user, flow.language)
                    if topic is None:
                        rprint("[green]✓[/green] Curriculum complete!")
                        db.commit()
                        break
                    output = service.sync_topic(session_id)
                elif text == "/restart":
                    service.end_session(session_id)
                    service.restart(user, flow.language)
                    db.commit()
                    rprint("Run [cyan]codetutor learn[/cyan] again to retake the assessment.")
                    return
                else:
                    output = service.chat(session_id, text)
            except TutorError as exc:
                rprint(f"[red]✗[/red] {getattr(exc, 'user_message', str(exc))}")
                continue

            db.commit()
            _print_output(output, flow.language)

        service.end_session(session_id)
    rprint("[dim]Session saved. See you next time![/dim]")


@app.command("version")
def show_version() -> None:
    """Show version information."""
    from src import __version__

    rprint(f"[bold]codetutor[/bold] v{__version__}")
    rprint("  AI programming tutor with an adaptive curriculum")
    rprint("  Gemini -> assessment -> curriculum -> chat + editor")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
