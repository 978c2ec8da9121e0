"""
⚙️ The Worker — capability loop

Sends the backlog to the model, executes every capability call the
model proposes, reports the results back, and repeats until the model
commits, stops acting, or the call budget runs out.
"""

from __future__ import annotations

import concurrent.futures
from enum import Enum
from typing import Sequence

from loguru import logger
from pydantic import BaseModel

from taskmill.agents import ModelSession
from taskmill.capabilities import (
    REGISTRY,
    CapabilityError,
    CapabilityInvocation,
    CapabilityName,
    CapabilityResult,
    Toolbox,
    resolve,
)
from taskmill.event_bus import EventBus


WORKER_SYSTEM_PROMPT = """You are the maintainer of this repository. You improve it one small, safe step per cycle.

Every cycle starts with two task lists:
  <AI TASKS> — your own running backlog, written by you in a previous cycle.
  <USER TASKS> — new requests from a human. They take priority.

Work only through your tools:
1. Use `list_files` and `read_files` to understand the code before changing it. Never guess file contents.
2. Use `write_file` to write complete file contents, and `delete_file` to remove files.
3. Before finishing, call `update_tasks` with the full remaining backlog: fold the user tasks into it and drop what you finished.
4. Finish with `commit`, describing what you changed. Calling `commit` ends the cycle, so it must be your last call.
"""

FORCE_COMMIT_PROMPT = "Use the 'commit' function to generate a commit message for the changes made."


class LoopState(str, Enum):
    AWAITING_RESPONSE = "awaiting_response"
    DISPATCHING = "dispatching"
    TERMINATED = "terminated"


class WorkOutcome(str, Enum):
    COMMITTED = "committed"
    NO_ACTION = "no_action"
    FORCED_COMMIT = "forced_commit"
    NO_COMMIT = "no_commit"


class WorkResult(BaseModel):
    commit_message: str = ""
    outcome: WorkOutcome
    requests: int = 0
    invocations: int = 0
    failed_invocations: int = 0


class WorkerAgent:
    """
    Runs the send → dispatch → report loop for one cycle.

    The worker holds no per-run state between calls to `work_on_tasks`;
    the commit message lives only inside that call.
    """

    role = "worker"

    def __init__(
        self,
        toolbox: Toolbox,
        max_calls: int = 15,
        max_parallel: int = 4,
        bus: EventBus | None = None,
    ):
        self.toolbox = toolbox
        self.max_calls = max_calls
        self.max_parallel = max_parallel
        self.bus = bus or EventBus()

    def work_on_tasks(self, session: ModelSession, prompt: str) -> WorkResult:
        """Drive the model until it commits; return the final commit message."""
        state = LoopState.AWAITING_RESPONSE
        pending_text: str | None = prompt
        pending_results: list[CapabilityResult] = []
        requests = 0
        invocations = 0
        failed = 0

        for call_count in range(self.max_calls):
            logger.debug(f"[WORKER] Loop Step {call_count + 1}/{self.max_calls} ({state.value})")

            batch = session.send(text=pending_text, results=pending_results)
            requests += 1

            if not batch:
                logger.info("[WORKER] Model proposed no capability calls. Stopping.")
                return self._finish(WorkOutcome.NO_ACTION, "", requests, invocations, failed)

            state = LoopState.DISPATCHING
            logger.debug(f"[WORKER] {state.value}: {len(batch)} call(s)")
            # Each batch starts with no commit message.
            commit_message: str | None = None
            pending_results = self.dispatch_batch(batch)
            invocations += len(pending_results)
            failed += sum(1 for r in pending_results if not r.ok)

            for result in pending_results:
                capability = REGISTRY.get(result.invocation.name)
                if result.ok and capability is not None and capability.terminal:
                    commit_message = result.output

            if commit_message is not None:
                return self._finish(WorkOutcome.COMMITTED, commit_message, requests, invocations, failed)

            pending_text = None
            state = LoopState.AWAITING_RESPONSE

        logger.warning(f"[WORKER] Loop exhausted after {self.max_calls} calls without `commit`. Forcing one.")

        force_text = FORCE_COMMIT_PROMPT if pending_text is None else f"{pending_text}\n\n{FORCE_COMMIT_PROMPT}"
        batch = session.send(text=force_text, results=pending_results, force=CapabilityName.COMMIT)
        requests += 1

        message = ""
        if batch:
            raw = batch[0].arguments.get("message")
            if isinstance(raw, str):
                message = raw

        outcome = WorkOutcome.FORCED_COMMIT if message else WorkOutcome.NO_COMMIT
        return self._finish(outcome, message, requests, invocations, failed)

    def dispatch_batch(self, batch: Sequence[CapabilityInvocation]) -> list[CapabilityResult]:
        """
        Execute a batch concurrently. Results come back in invocation order;
        execution order within the batch is unspecified.
        """
        if len(batch) == 1:
            return [self.dispatch(batch[0])]

        workers = min(self.max_parallel, len(batch))
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            return list(executor.map(self.dispatch, batch))

    def dispatch(self, invocation: CapabilityInvocation) -> CapabilityResult:
        logger.info(f"[WORKER] 🛠️ Tool call: {invocation.name}")

        if invocation.parse_error:
            result = CapabilityResult(invocation=invocation, error=invocation.parse_error)
        else:
            try:
                capability = resolve(invocation.name)
                result = CapabilityResult(
                    invocation=invocation,
                    output=capability.invoke(self.toolbox, invocation.arguments),
                )
            except CapabilityError as e:
                result = CapabilityResult(invocation=invocation, error=str(e))

        if not result.ok:
            logger.warning(f"[WORKER] {invocation.name} failed: {result.error}")

        self.bus.emit("capability_dispatched", self.role, {
            "name": invocation.name,
            "call_id": invocation.call_id,
            "ok": result.ok,
            "error": result.error,
        })
        return result

    def _finish(
        self,
        outcome: WorkOutcome,
        message: str,
        requests: int,
        invocations: int,
        failed: int,
    ) -> WorkResult:
        result = WorkResult(
            commit_message=message,
            outcome=outcome,
            requests=requests,
            invocations=invocations,
            failed_invocations=failed,
        )
        self.bus.emit("work_finished", self.role, result.model_dump(mode="json"))
        logger.info(f"[WORKER] {LoopState.TERMINATED.value}: {outcome.value} after {requests} request(s)")
        return result
