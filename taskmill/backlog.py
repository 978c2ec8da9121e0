"""
TASKMILL Task Backlog

Two plain-text task lists drive every cycle:
  - the AI list, rewritten by the agent at the end of a cycle
  - the user list, written by a human and cleared once consumed

The store never parses either list.
"""

from __future__ import annotations

import concurrent.futures
from dataclasses import dataclass
from pathlib import Path

from loguru import logger


class BacklogError(Exception):
    pass


@dataclass
class Backlog:
    ai: str = ""
    user: str = ""

    def to_prompt(self) -> str:
        return f"<AI TASKS>{self.ai}</AI TASKS>\n<USER TASKS>{self.user}</USER TASKS>"


class TaskBacklog:
    """Reads and persists the AI and user task lists."""

    def __init__(self, ai_path: Path, user_path: Path):
        self.ai_path = Path(ai_path)
        self.user_path = Path(user_path)

    def read(self) -> Backlog:
        """
        Read both lists concurrently. A missing file is an empty list;
        any other failure raises BacklogError.
        """
        with concurrent.futures.ThreadPoolExecutor(max_workers=2) as executor:
            ai_future = executor.submit(_read_text, self.ai_path)
            user_future = executor.submit(_read_text, self.user_path)
            backlog = Backlog(ai=ai_future.result(), user=user_future.result())

        logger.debug(
            f"[BACKLOG] Loaded {len(backlog.ai)} chars of AI tasks, "
            f"{len(backlog.user)} chars of user tasks"
        )
        return backlog

    def update(self, tasks: str) -> bool:
        """
        Replace the AI list with `tasks`, then clear the user list.

        There is no rollback: if the second write fails the AI list is
        already updated while the user list still holds its old content.
        """
        try:
            _write_text(self.ai_path, tasks)
            _write_text(self.user_path, "")
        except OSError as e:
            logger.error(f"[BACKLOG] Error writing tasks: {e}")
            return False

        logger.info(f"[BACKLOG] AI tasks updated ({len(tasks.splitlines())} lines), user tasks cleared")
        return True


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return ""
    except (OSError, UnicodeDecodeError) as e:
        raise BacklogError(f"Cannot read task list {path}: {e}") from e


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
