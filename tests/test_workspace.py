import subprocess
from pathlib import Path

from taskmill.workspace import MoveOutcome, WorkspaceBridge
from taskmill.workspace.ignore import GitIgnoreOracle


def _touch(root: Path, rel: str, content: str = "x") -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


# ---------------------------------------------------------------------------
# list / read
# ---------------------------------------------------------------------------

def test_directory_expands_to_all_files_recursively(tmp_path, null_ignore):
    _touch(tmp_path, "src/a.py")
    _touch(tmp_path, "src/sub/b.py")
    _touch(tmp_path, "docs/readme.md")
    ws = WorkspaceBridge(tmp_path, ignore=null_ignore)

    assert ws.list_entries("src") == ["src/a.py", "src/sub/b.py"]
    assert ws.list_entries("src/") == ["src/a.py", "src/sub/b.py"]


def test_glob_pattern_matches_files_only(tmp_path, null_ignore):
    _touch(tmp_path, "src/a.py")
    _touch(tmp_path, "src/b.txt")
    (tmp_path / "src" / "pkg.py").mkdir()
    ws = WorkspaceBridge(tmp_path, ignore=null_ignore)

    assert ws.list_entries("src/*.py") == ["src/a.py"]
    assert ws.list_entries("**/*.txt") == ["src/b.txt"]


def test_list_results_are_unique(tmp_path, null_ignore):
    _touch(tmp_path, "src/a.py")
    _touch(tmp_path, "src/deep/b.py")
    ws = WorkspaceBridge(tmp_path, ignore=null_ignore)

    paths = ws.list_entries("src/**/**/*.py")
    assert len(paths) == len(set(paths))
    assert set(paths) == {"src/a.py", "src/deep/b.py"}


def test_pattern_outside_root_matches_nothing(tmp_path, null_ignore):
    root = tmp_path / "proj"
    _touch(tmp_path, "outside.txt")
    root.mkdir()
    ws = WorkspaceBridge(root, ignore=null_ignore)

    assert ws.list_entries("../*.txt") == []
    assert ws.read_entries("../outside.txt") == []


def test_ignored_files_are_invisible(git_repo):
    _touch(git_repo, ".gitignore", "secrets/\n*.log\n")
    _touch(git_repo, "README.md", "hello")
    _touch(git_repo, "src/app.py", "print('hi')")
    _touch(git_repo, "src/debug.log", "noise")
    _touch(git_repo, "secrets/key.txt", "hunter2")
    ws = WorkspaceBridge(git_repo)

    assert ws.list_entries(".") == ["README.md", "src/app.py"]
    assert ws.list_entries("src") == ["src/app.py"]
    assert ws.list_entries("**/*.log") == []
    assert ws.list_entries("secrets") == []
    assert ws.read_entries("secrets/key.txt") == []
    assert [e.path for e in ws.read_entries("**/*")] == ["README.md", "src/app.py"]


def test_ignore_oracle_outside_git_hides_nothing(tmp_path):
    oracle = GitIgnoreOracle(tmp_path)
    assert oracle.filter(["a.txt", "b.log"]) == ["a.txt", "b.log"]


def test_read_skips_undecodable_files(tmp_path, null_ignore):
    _touch(tmp_path, "src/ok.py", "x = 1\n")
    (tmp_path / "src" / "blob.bin").write_bytes(b"\xff\xfe\x00\x81")
    ws = WorkspaceBridge(tmp_path, ignore=null_ignore)

    entries = ws.read_entries("src")

    assert [e.path for e in entries] == ["src/ok.py"]
    assert entries[0].content == "x = 1\n"


# ---------------------------------------------------------------------------
# write
# ---------------------------------------------------------------------------

def test_write_creates_parent_folders(tmp_path, null_ignore):
    ws = WorkspaceBridge(tmp_path, ignore=null_ignore)

    assert ws.write_entry("a/b/c.txt", "hello") is True
    assert (tmp_path / "a" / "b" / "c.txt").read_text() == "hello"


def test_write_is_idempotent(tmp_path, null_ignore):
    ws = WorkspaceBridge(tmp_path, ignore=null_ignore)

    assert ws.write_entry("notes.md", "same") is True
    assert ws.write_entry("notes.md", "same") is True
    assert (tmp_path / "notes.md").read_text() == "same"


def test_write_overwrites(tmp_path, null_ignore):
    _touch(tmp_path, "notes.md", "old")
    ws = WorkspaceBridge(tmp_path, ignore=null_ignore)

    assert ws.write_entry("notes.md", "new") is True
    assert (tmp_path / "notes.md").read_text() == "new"


def test_write_failure_returns_false(tmp_path, null_ignore):
    (tmp_path / "src").mkdir()
    ws = WorkspaceBridge(tmp_path, ignore=null_ignore)

    assert ws.write_entry("src", "not a file") is False
    assert ws.write_entry("../escape.txt", "x") is False
    assert not (tmp_path.parent / "escape.txt").exists()


# ---------------------------------------------------------------------------
# delete
# ---------------------------------------------------------------------------

def test_delete_prunes_empty_folder_chain(tmp_path, null_ignore):
    root = tmp_path / "proj"
    _touch(root, "a/b/c/file.txt")
    ws = WorkspaceBridge(root, ignore=null_ignore)

    assert ws.delete_entry("a/b/c/file.txt") is True
    assert not (root / "a").exists()
    assert root.is_dir()


def test_delete_keeps_folders_with_siblings(tmp_path, null_ignore):
    _touch(tmp_path, "a/b/one.txt")
    _touch(tmp_path, "a/b/two.txt")
    ws = WorkspaceBridge(tmp_path, ignore=null_ignore)

    assert ws.delete_entry("a/b/one.txt") is True
    assert not (tmp_path / "a" / "b" / "one.txt").exists()
    assert (tmp_path / "a" / "b" / "two.txt").exists()


def test_delete_stops_at_first_non_empty_ancestor(tmp_path, null_ignore):
    _touch(tmp_path, "a/keep.txt")
    _touch(tmp_path, "a/b/c/file.txt")
    ws = WorkspaceBridge(tmp_path, ignore=null_ignore)

    assert ws.delete_entry("a/b/c/file.txt") is True
    assert not (tmp_path / "a" / "b").exists()
    assert (tmp_path / "a" / "keep.txt").exists()


def test_delete_missing_file_is_not_an_error(tmp_path, null_ignore):
    ws = WorkspaceBridge(tmp_path, ignore=null_ignore)
    assert ws.delete_entry("nope/missing.txt") is True


def test_delete_refuses_sibling_root_with_shared_prefix(tmp_path, null_ignore):
    root = tmp_path / "proj"
    root.mkdir()
    victim = _touch(tmp_path, "proj2/x.txt")
    ws = WorkspaceBridge(root, ignore=null_ignore)

    assert ws.delete_entry("../proj2/x.txt") is False
    assert victim.exists()


def test_delete_directory_fails(tmp_path, null_ignore):
    _touch(tmp_path, "a/file.txt")
    ws = WorkspaceBridge(tmp_path, ignore=null_ignore)

    assert ws.delete_entry("a") is False
    assert (tmp_path / "a" / "file.txt").exists()


# ---------------------------------------------------------------------------
# move
# ---------------------------------------------------------------------------

def test_move_copies_then_removes_source(tmp_path, null_ignore):
    _touch(tmp_path, "old/src.txt", "payload")
    ws = WorkspaceBridge(tmp_path, ignore=null_ignore)

    outcome = ws.move_entry("old/src.txt", "new/deep/dst.txt")

    assert outcome is MoveOutcome.MOVED
    assert outcome.ok
    assert (tmp_path / "new" / "deep" / "dst.txt").read_text() == "payload"
    assert not (tmp_path / "old").exists()


def test_move_keeps_source_when_destination_folder_cannot_be_created(tmp_path, null_ignore):
    src = _touch(tmp_path, "src.txt", "payload")
    _touch(tmp_path, "blocker", "i am a file")
    ws = WorkspaceBridge(tmp_path, ignore=null_ignore)

    outcome = ws.move_entry("src.txt", "blocker/sub/dst.txt")

    assert outcome is MoveOutcome.NOT_MOVED
    assert not outcome.ok
    assert src.read_text() == "payload"


def test_move_missing_source(tmp_path, null_ignore):
    ws = WorkspaceBridge(tmp_path, ignore=null_ignore)

    assert ws.move_entry("ghost.txt", "dst.txt") is MoveOutcome.NOT_MOVED
    assert not (tmp_path / "dst.txt").exists()


def test_move_reports_copied_but_not_deleted(tmp_path, null_ignore, monkeypatch):
    _touch(tmp_path, "src.txt", "payload")
    ws = WorkspaceBridge(tmp_path, ignore=null_ignore)
    monkeypatch.setattr(ws, "delete_entry", lambda path: False)

    outcome = ws.move_entry("src.txt", "dst.txt")

    assert outcome is MoveOutcome.COPIED_NOT_DELETED
    assert not outcome.ok
    assert (tmp_path / "src.txt").read_text() == "payload"
    assert (tmp_path / "dst.txt").read_text() == "payload"


# ---------------------------------------------------------------------------
# containment
# ---------------------------------------------------------------------------

def test_nested_repository_does_not_expose_ignored_files(git_repo):
    _touch(git_repo, ".gitignore", "secret.txt\n")
    _touch(git_repo, "app.py", "print('hi')")
    _touch(git_repo, "secret.txt", "hunter2")
    _touch(git_repo, "vendor/lib.py", "x = 1")
    subprocess.run(["git", "init", "-q"], cwd=git_repo / "vendor", check=True)
    ws = WorkspaceBridge(git_repo)

    listed = ws.list_entries(".")

    assert "app.py" in listed
    assert "secret.txt" not in listed
    assert "vendor/lib.py" not in listed
    assert ws.read_entries("secret.txt") == []


def test_symlink_out_of_root_is_refused(tmp_path, null_ignore):
    root = tmp_path / "proj"
    root.mkdir()
    outside = tmp_path / "outside"
    secret = _touch(outside, "passwd", "root:x:0:0")
    (root / "link").symlink_to(outside)
    ws = WorkspaceBridge(root, ignore=null_ignore)

    assert ws.list_entries(".") == []
    assert ws.read_entries("link/passwd") == []
    assert ws.write_entry("link/pwned.txt", "gotcha") is False
    assert not (outside / "pwned.txt").exists()
    assert ws.delete_entry("link/passwd") is False
    assert secret.read_text() == "root:x:0:0"


def test_symlink_within_root_is_followed(tmp_path, null_ignore):
    _touch(tmp_path, "real/a.txt", "A")
    (tmp_path / "alias").symlink_to(tmp_path / "real")
    ws = WorkspaceBridge(tmp_path, ignore=null_ignore)

    assert [e.content for e in ws.read_entries("alias/a.txt")] == ["A"]
