"""
Git ignore oracle.

Answers "is this path ignored?" against the enclosing repository's
.gitignore rules via `git check-ignore`. Ignored files are invisible to the
agent: they have no effect on the tracked repo and may hold secrets.
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Iterable

from loguru import logger


class GitIgnoreOracle:
    """Batch `git check-ignore` lookups rooted at a repository path."""

    def __init__(self, root: Path, timeout: float = 30.0):
        self.root = root
        self.timeout = timeout

    def is_ignored(self, path: str) -> bool:
        return path in self.ignored([path])

    def ignored(self, paths: Iterable[str]) -> set[str]:
        """
        Return the subset of `paths` matched by ignore rules.

        Outside a git work tree nothing is ignored. Inside one, a path git
        cannot answer for (e.g. inside a nested repository) counts as ignored.
        """
        candidates = [p for p in paths if p]
        if not candidates:
            return set()

        try:
            result = self._check_ignore(candidates)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"[IGNORE] git check-ignore unavailable: {e}")
            return set()

        # 0 = some ignored, 1 = none ignored, 128 = not a repo / fatal
        if result.returncode == 0:
            return {p for p in result.stdout.split("\0") if p}
        if result.returncode == 1:
            return set()

        logger.debug(f"[IGNORE] git check-ignore failed: {result.stderr.strip()}")
        if not self._inside_work_tree():
            return set()
        return self._ignored_one_by_one(candidates)

    def _ignored_one_by_one(self, candidates: list[str]) -> set[str]:
        ignored = set()
        for path in candidates:
            try:
                result = self._check_ignore([path])
            except (OSError, subprocess.TimeoutExpired) as e:
                logger.warning(f"[IGNORE] Hiding {path}, git check-ignore unavailable: {e}")
                ignored.add(path)
                continue
            if result.returncode == 1:
                continue
            if result.returncode != 0:
                logger.debug(f"[IGNORE] Hiding {path}: {result.stderr.strip()}")
            ignored.add(path)
        return ignored

    def _check_ignore(self, candidates: list[str]) -> subprocess.CompletedProcess:
        return subprocess.run(
            ["git", "check-ignore", "--stdin", "-z"],
            cwd=self.root,
            input="\0".join(candidates) + "\0",
            capture_output=True,
            text=True,
            timeout=self.timeout,
        )

    def _inside_work_tree(self) -> bool:
        try:
            result = subprocess.run(
                ["git", "rev-parse", "--is-inside-work-tree"],
                cwd=self.root,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired):
            return False
        return result.returncode == 0 and result.stdout.strip() == "true"

    def filter(self, paths: Iterable[str]) -> list[str]:
        """Drop ignored paths, preserving order."""
        paths = list(paths)
        ignored = self.ignored(paths)
        if ignored:
            logger.debug(f"[IGNORE] Hiding {len(ignored)} ignored path(s)")
        return [p for p in paths if p not in ignored]
