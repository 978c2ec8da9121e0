"""
TASKMILL Workspace Bridge

Everything the agent touches on disk goes through here. Paths are
relative to the project root; anything that normalizes to a location
outside the root, directly or through a symlink, is refused.

Failures never propagate: reads degrade to partial results, writes
and deletes collapse to a boolean, moves report a MoveOutcome.
"""

from __future__ import annotations

import glob
import os
import shutil
from enum import Enum
from pathlib import Path

from loguru import logger
from pydantic import BaseModel

from taskmill.workspace.ignore import GitIgnoreOracle


class WorkspaceError(Exception):
    pass


class WorkspaceEntry(BaseModel):
    path: str
    content: str


class MoveOutcome(str, Enum):
    MOVED = "moved"
    NOT_MOVED = "not_moved"  # copy failed, source untouched
    COPIED_NOT_DELETED = "copied_not_deleted"  # both copies exist

    @property
    def ok(self) -> bool:
        return self is MoveOutcome.MOVED


class WorkspaceBridge:
    """
    File operations scoped to a single project root.
    """

    def __init__(self, root: Path, ignore: GitIgnoreOracle | None = None):
        self.root = Path(root).resolve()
        self.ignore = ignore if ignore is not None else GitIgnoreOracle(self.root)

    # -- Queries ------------------------------------------------------------

    def list_entries(self, pattern: str) -> list[str]:
        """
        Expand a path or glob pattern to the files it matches.

        An existing directory expands to every file beneath it. Ignored
        files and directories are dropped; duplicates collapse.
        """
        try:
            target = self.resolve(pattern)
        except WorkspaceError as e:
            logger.warning(f"[WORKSPACE] {e}")
            return []

        rel_pattern = self.relative(target)
        if target.is_dir():
            rel_pattern = "**/*" if rel_pattern == "." else f"{rel_pattern}/**/*"

        matches = set()
        for match in glob.glob(rel_pattern, root_dir=self.root, recursive=True):
            full = Path(os.path.normpath(self.root / match))
            if not self.contains(full) or not full.is_file():
                continue
            matches.add(self.relative(full))

        return sorted(self.ignore.filter(sorted(matches)))

    def read_entries(self, pattern: str) -> list[WorkspaceEntry]:
        """Read every visible file matching `pattern`, skipping unreadable ones."""
        entries = []
        for rel_path in self.list_entries(pattern):
            try:
                content = (self.root / rel_path).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"[WORKSPACE] Skipping unreadable file {rel_path}: {e}")
                continue
            entries.append(WorkspaceEntry(path=rel_path, content=content))
        return entries

    # -- Mutations ----------------------------------------------------------

    def write_entry(self, path: str, content: str) -> bool:
        """Create parent folders as needed and overwrite the file."""
        try:
            full = self.resolve(path)
            full.parent.mkdir(parents=True, exist_ok=True)
            full.write_text(content, encoding="utf-8")
        except (OSError, WorkspaceError) as e:
            logger.error(f"[WORKSPACE] Failed to write file {path}: {e}")
            return False

        logger.debug(f"[WORKSPACE] Wrote {len(content)} chars to {path}")
        return True

    def delete_entry(self, path: str) -> bool:
        """
        Delete a file (missing is fine) and prune any parent folders
        left empty, stopping short of the project root.
        """
        try:
            full = self.resolve(path)
            if full == self.root:
                raise WorkspaceError("Refusing to delete the project root")
            full.unlink(missing_ok=True)
        except (OSError, WorkspaceError) as e:
            logger.error(f"[WORKSPACE] Failed to delete file {path}: {e}")
            return False

        self._prune_empty_parents(full.parent)
        logger.debug(f"[WORKSPACE] Deleted {path}")
        return True

    def move_entry(self, src: str, dst: str) -> MoveOutcome:
        """
        Copy `src` to `dst`, then delete `src`.

        Not atomic. If the copy fails the source is untouched; if the
        delete fails afterwards both files exist.
        """
        try:
            full_src = self.resolve(src)
            full_dst = self.resolve(dst)
            full_dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(full_src, full_dst)
        except (OSError, WorkspaceError) as e:
            logger.error(f"[WORKSPACE] Failed to move file from {src} to {dst}: {e}")
            return MoveOutcome.NOT_MOVED

        if not self.delete_entry(src):
            logger.error(f"[WORKSPACE] File copied but not deleted: {src}")
            return MoveOutcome.COPIED_NOT_DELETED

        return MoveOutcome.MOVED

    # -- Paths --------------------------------------------------------------

    def resolve(self, path: str) -> Path:
        """
        Absolute, normalized path for `path`; it must stay under the root
        both as written and with symlinks followed.
        """
        full = Path(os.path.normpath(self.root / path))
        if not self.contains(full):
            raise WorkspaceError(f"Path escapes project root: {path}")
        return full

    def contains(self, full: Path) -> bool:
        return full.is_relative_to(self.root) and full.resolve().is_relative_to(self.root)

    def relative(self, full: Path) -> str:
        return full.relative_to(self.root).as_posix()

    def _prune_empty_parents(self, directory: Path) -> None:
        current = directory
        while current != self.root and current.is_relative_to(self.root):
            try:
                if any(current.iterdir()):
                    break
                current.rmdir()
            except OSError:
                break
            logger.debug(f"[WORKSPACE] Pruned empty folder {self.relative(current)}")
            current = current.parent
