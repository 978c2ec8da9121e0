"""
TASKMILL Controller — one maintenance cycle

It is NOT smart. It is deterministic.

Responsibilities:
  - Read the AI and user backlogs
  - Build the cycle prompt
  - Open a model session and hand it to the worker
  - Track budget
  - Report the commit message for the external harness

It never commits. It never writes code. It only coordinates.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from loguru import logger
from rich.console import Console
from rich.panel import Panel

from taskmill.agents import LiteLLMSession, ModelSession
from taskmill.agents.worker import WORKER_SYSTEM_PROMPT, WorkerAgent, WorkOutcome
from taskmill.backlog import TaskBacklog
from taskmill.capabilities import Toolbox, tool_schemas
from taskmill.config_loader import TaskmillConfig, load_config
from taskmill.event_bus import EventBus
from taskmill.router import BudgetExceededError, Router
from taskmill.workspace import WorkspaceBridge

console = Console()

SUCCESS_STATUSES = ("committed", "forced_commit", "no_action", "no_commit")


class Controller:
    """
    Runs a single backlog cycle against one repository.

    Pipeline: Read backlog → Worker loop → Commit message
    """

    def __init__(
        self,
        repo_path: Path,
        config: TaskmillConfig | None = None,
        bus: EventBus | None = None,
        session: ModelSession | None = None,
    ):
        self.repo_path = repo_path.resolve()
        self.config = config or load_config(self.repo_path)
        self.bus = bus or EventBus()

        self.backlog = TaskBacklog(
            ai_path=self.repo_path / self.config.backlog.ai_tasks,
            user_path=self.repo_path / self.config.backlog.user_tasks,
        )
        self.workspace = WorkspaceBridge(self.repo_path)
        self.worker = WorkerAgent(
            Toolbox(workspace=self.workspace, backlog=self.backlog),
            max_calls=self.config.limits.max_calls,
            max_parallel=self.config.limits.max_parallel_calls,
            bus=self.bus,
        )

        self.router: Router | None = None
        self._session = session

    def run(self) -> dict[str, Any]:
        """
        Execute one cycle.

        Backlog read failures propagate: without a backlog there is
        nothing to run, and the caller must exit non-zero.
        """
        backlog = self.backlog.read()
        prompt = backlog.to_prompt()

        result: dict[str, Any] = {
            "status": "pending",
            "commit_message": "",
        }

        console.print(Panel(
            f"[bold]Repo:[/] {self.repo_path}\n"
            f"[bold]AI tasks:[/] {len(backlog.ai.splitlines())} lines  |  "
            f"[bold]User tasks:[/] {len(backlog.user.splitlines())} lines\n"
            f"[bold]Model:[/] {self.config.routing.worker}  |  "
            f"[bold]Max calls:[/] {self.config.limits.max_calls}",
            title="⚙️ TASKMILL cycle",
            border_style="bright_green",
        ))
        self.bus.emit("cycle_started", "controller", {
            "repo": str(self.repo_path),
            "ai_chars": len(backlog.ai),
            "user_chars": len(backlog.user),
        })

        try:
            session = self._session or self._open_session()
            work = self.worker.work_on_tasks(session, prompt)

            result["status"] = work.outcome.value
            result["commit_message"] = work.commit_message
            result["requests"] = work.requests
            result["invocations"] = work.invocations
            result["failed_invocations"] = work.failed_invocations

            if work.outcome is WorkOutcome.NO_COMMIT:
                console.print("[yellow]⚠ Model never produced a commit message.[/]")

        except BudgetExceededError as e:
            console.print(f"[red]💸 Budget exceeded: {e}[/]")
            result["status"] = "budget_exceeded"
        except KeyboardInterrupt:
            console.print("\n[yellow]⚡ Interrupted by human.[/]")
            result["status"] = "interrupted"
        except Exception as e:
            logger.exception("[CONTROLLER] Cycle error")
            console.print(f"[red]💥 Error: {e}[/]")
            result["status"] = "error"
            result["error"] = str(e)
        finally:
            if self.router:
                result["budget"] = self.router.budget.summary()
                self._print_budget_summary()
            self.bus.emit("cycle_finished", "controller", dict(result))

        return result

    def _open_session(self) -> ModelSession:
        self.router = Router(self.config)
        return LiteLLMSession(
            self.router,
            system_prompt=WORKER_SYSTEM_PROMPT,
            tools=tool_schemas(),
            tool_choice=self.config.routing.tool_choice,
        )

    def _print_budget_summary(self) -> None:
        summary = self.router.budget.summary()
        console.print(Panel(
            f"Tokens: {summary['total_tokens']:,} / "
            f"Cost: ${summary['estimated_cost']:.4f} / "
            f"Calls: {summary['call_count']}",
            title="💸 Budget",
            border_style="green",
        ))
