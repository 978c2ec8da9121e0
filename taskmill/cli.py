"""
TASKMILL CLI — The Interface

  taskmill run --repo <path>       (one backlog cycle, prints the commit message)
  taskmill tasks --repo <path>     (show the AI + user backlogs)
  taskmill status --repo <path>    (check config + API keys)
  taskmill init <path>             (bootstrap .taskmill in a repo)
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from taskmill.audit_logger import AuditLogger
from taskmill.backlog import BacklogError, TaskBacklog
from taskmill.config_loader import load_config, validate_api_keys
from taskmill.controller import SUCCESS_STATUSES, Controller
from taskmill.event_bus import EventBus
from taskmill.identity import BANNER, __codename__, __tagline__, __version__

# Load .env.local / .env from current directory, then home
load_dotenv(".env.local")
load_dotenv()
load_dotenv(Path.home() / ".taskmill" / ".env")

app = typer.Typer(
    name="taskmill",
    help=f"{__codename__} — {__tagline__}",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


# ---------------------------------------------------------------------------
# Banner
# ---------------------------------------------------------------------------


def _print_banner():
    console.print(f"[bright_green]{BANNER}[/]")
    console.print(f"  [dim]v{__version__} — {__tagline__}[/]\n")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def run(
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the target repository"),
    max_calls: Optional[int] = typer.Option(None, "--max-calls", "-n", min=1, help="Override the model call budget"),
    message_file: Optional[Path] = typer.Option(None, "--message-file", "-m", help="Write the commit message to this file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Run one backlog cycle and print the resulting commit message."""
    _print_banner()
    _configure_logging(verbose)

    repo = repo.resolve()
    if not repo.is_dir():
        console.print(f"[red]Repository not found: {repo}[/]")
        raise typer.Exit(1)

    config = load_config(repo)
    if max_calls:
        config.limits.max_calls = max_calls

    bus = EventBus()
    AuditLogger(repo / config.workspace.log_dir / "audit.jsonl", bus)

    controller = Controller(repo_path=repo, config=config, bus=bus)
    try:
        result = controller.run()
    except BacklogError as e:
        console.print(f"[red]🚫 {e}[/]")
        raise typer.Exit(1)

    status = result.get("status", "unknown")
    commit_message = result.get("commit_message", "")

    if commit_message:
        console.print(Panel(commit_message, title="📝 Commit message", border_style="cyan"))

    if message_file:
        message_file.parent.mkdir(parents=True, exist_ok=True)
        message_file.write_text(commit_message, encoding="utf-8")
        console.print(f"[dim]Commit message written to {message_file}[/]")

    status_color = {
        "committed": "green",
        "forced_commit": "yellow",
        "no_action": "yellow",
        "no_commit": "yellow",
    }.get(status, "red")
    console.print(f"\n[bold {status_color}]Status: {status}[/]")

    if status not in SUCCESS_STATUSES:
        raise typer.Exit(1)


@app.command()
def tasks(
    repo: Path = typer.Option(Path("."), "--repo", "-r", help="Path to the target repository"),
):
    """Show the AI and user task lists."""
    repo = repo.resolve()
    config = load_config(repo)
    store = TaskBacklog(
        ai_path=repo / config.backlog.ai_tasks,
        user_path=repo / config.backlog.user_tasks,
    )

    try:
        backlog = store.read()
    except BacklogError as e:
        console.print(f"[red]🚫 {e}[/]")
        raise typer.Exit(1)

    console.print(Panel(
        backlog.ai.strip() or "[dim](empty)[/]",
        title=f"🤖 AI tasks — {config.backlog.ai_tasks}",
        border_style="cyan",
    ))
    console.print(Panel(
        backlog.user.strip() or "[dim](empty)[/]",
        title=f"🙋 User tasks — {config.backlog.user_tasks}",
        border_style="magenta",
    ))


@app.command()
def status(
    repo: Optional[Path] = typer.Option(None, "--repo", "-r"),
):
    """Check TASKMILL configuration and readiness."""
    _print_banner()

    keys = validate_api_keys()
    key_table = Table(title="API Keys", border_style="cyan")
    key_table.add_column("Key")
    key_table.add_column("Status")

    for key, available in keys.items():
        status_str = "[green]✓ Available[/]" if available else "[red]✗ Missing[/]"
        key_table.add_row(key, status_str)

    console.print(key_table)

    if repo:
        config = load_config(repo.resolve())
        console.print("\n[bold]Routing:[/]")
        console.print(f"  Worker:      {config.routing.worker}")
        console.print(f"  Tool choice: {config.routing.tool_choice}")

        console.print("\n[bold]Limits:[/]")
        console.print(f"  Max calls/cycle:   {config.limits.max_calls}")
        console.print(f"  Parallel calls:    {config.limits.max_parallel_calls}")
        console.print(f"  Max tokens/cycle:  {config.limits.max_tokens_per_cycle:,}")
        console.print(f"  Max $/cycle:       ${config.limits.max_dollars_per_cycle}")

        console.print("\n[bold]Backlog:[/]")
        console.print(f"  AI tasks:   {config.backlog.ai_tasks}")
        console.print(f"  User tasks: {config.backlog.user_tasks}")


@app.command()
def init(
    repo: Optional[Path] = typer.Argument(None, help="Path to repository"),
):
    """Initialize .taskmill directory and task lists in a repository."""
    _print_banner()

    repo = (repo or Path.cwd()).resolve()
    tm_dir = repo / ".taskmill"
    tm_dir.mkdir(parents=True, exist_ok=True)
    (tm_dir / "logs").mkdir(exist_ok=True)

    config_path = tm_dir / "config.yaml"
    if not config_path.exists():
        config_path.write_text("""# TASKMILL repo-level config overrides
# These merge with the built-in defaults.

# Pick the model (any LiteLLM model string):
# routing:
#   worker: "anthropic/claude-sonnet-4-20250514"

# Adjust limits:
# limits:
#   max_calls: 10
#   max_dollars_per_cycle: 2.0

# Move the task lists:
# backlog:
#   ai_tasks: ".ai-tasks.md"
#   user_tasks: "tasks.md"
""")

    config = load_config(repo)
    for task_file in (config.backlog.ai_tasks, config.backlog.user_tasks):
        path = repo / task_file
        if not path.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("")

    gitignore = repo / ".gitignore"
    ignore_entries = [".taskmill/logs/"]
    if gitignore.exists():
        content = gitignore.read_text()
        additions = [e for e in ignore_entries if e not in content]
        if additions:
            with open(gitignore, "a") as f:
                f.write("\n# TASKMILL\n")
                for e in additions:
                    f.write(f"{e}\n")
    else:
        gitignore.write_text("# TASKMILL\n" + "\n".join(ignore_entries) + "\n")

    console.print(f"[green]✅ Initialized TASKMILL in {tm_dir}[/]")
    console.print(f"  Config:     {config_path}")
    console.print(f"  AI tasks:   {repo / config.backlog.ai_tasks}")
    console.print(f"  User tasks: {repo / config.backlog.user_tasks}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _configure_logging(verbose: bool) -> None:
    logger.remove()
    if verbose:
        logger.add(
            lambda msg: console.print(f"{msg}", highlight=False, markup=False, style="dim"),
            level="DEBUG",
            format="{time:HH:mm:ss} | {level:<7} | {message}",
        )
    else:
        logger.add(
            lambda msg: console.print(f"{msg}", highlight=False, markup=False, style="dim"),
            level="WARNING",
            format="{message}",
        )


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
