"""
TASKMILL Capability Registry

The closed set of actions the model may take. Each Capability carries
its advertised schema (an argument model) together with its handler,
so what the model is told and what the worker dispatches cannot drift.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, Field, ValidationError

from taskmill.backlog import TaskBacklog
from taskmill.workspace import WorkspaceBridge

REGISTRY_VERSION = 1


class CapabilityError(Exception):
    pass


class UnknownCapabilityError(CapabilityError):
    pass


class InvalidArgumentsError(CapabilityError):
    pass


class CapabilityName(str, Enum):
    LIST_FILES = "list_files"
    READ_FILES = "read_files"
    WRITE_FILE = "write_file"
    DELETE_FILE = "delete_file"
    UPDATE_TASKS = "update_tasks"
    COMMIT = "commit"


# ---------------------------------------------------------------------------
# Argument schemas
# ---------------------------------------------------------------------------

class ListFilesArgs(BaseModel):
    path: str = Field(
        description="The directory to search, relative to the root of the repository. Example: 'src/'",
    )


class ReadFilesArgs(BaseModel):
    path: str = Field(
        description=(
            "A file path or glob pattern. Files ignored by .gitignore will be skipped. "
            "Examples: 'src/**/*.py', 'README.md'"
        ),
    )


class WriteFileArgs(BaseModel):
    path: str = Field(
        description="The file path to write (relative to the project root). Example: 'src/utils/add.py'",
    )
    content: str = Field(description="The content to write into the file")


class DeleteFileArgs(BaseModel):
    path: str = Field(
        description="The path to the file to delete (relative to the project root). Example: 'src/obsolete/module.py'",
    )


class UpdateTasksArgs(BaseModel):
    tasks: str = Field(
        description=(
            "The text to write to the tasks file. Each task should take one line and typically "
            "include: an incremental number, a description, and a set of suggested files that "
            "should be updated to fulfill the task."
        ),
    )


class CommitArgs(BaseModel):
    message: str = Field(
        min_length=1,
        description=(
            "The commit message. The first line should be a concise title in imperative mood. "
            "If helpful, follow with a short paragraph describing the changes in more detail."
        ),
    )


# ---------------------------------------------------------------------------
# Invocations
# ---------------------------------------------------------------------------

@dataclass
class Toolbox:
    """The collaborators capability handlers act on."""
    workspace: WorkspaceBridge
    backlog: TaskBacklog


class CapabilityInvocation(BaseModel):
    """One capability call proposed by the model."""
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    call_id: str = ""
    parse_error: str | None = None


class CapabilityResult(BaseModel):
    """Outcome of one invocation, as reported back to the model."""
    invocation: CapabilityInvocation
    output: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def payload(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error}
        return {"output": self.output}


@dataclass(frozen=True)
class Capability:
    name: CapabilityName
    description: str
    arguments: type[BaseModel]
    handler: Callable[[Toolbox, Any], Any]
    terminal: bool = False

    def parse_arguments(self, raw: dict[str, Any]) -> BaseModel:
        try:
            return self.arguments.model_validate(raw)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                for err in e.errors()
            )
            raise InvalidArgumentsError(f"Invalid arguments for {self.name.value}: {problems}") from e

    def invoke(self, toolbox: Toolbox, raw: dict[str, Any]) -> Any:
        return self.handler(toolbox, self.parse_arguments(raw))

    def tool_schema(self) -> dict[str, Any]:
        """Function-calling schema (OpenAI / LiteLLM format)."""
        properties = {}
        required = []
        for field_name, info in self.arguments.model_fields.items():
            properties[field_name] = {"type": "string", "description": info.description or ""}
            if info.is_required():
                required.append(field_name)

        return {
            "type": "function",
            "function": {
                "name": self.name.value,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": required,
                },
            },
        }


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_CAPABILITIES = [
    Capability(
        name=CapabilityName.LIST_FILES,
        description=(
            "Recursively lists all files in a directory, excluding any files or folders "
            "ignored by .gitignore. Returns paths relative to the project root."
        ),
        arguments=ListFilesArgs,
        handler=lambda tb, a: tb.workspace.list_entries(a.path),
    ),
    Capability(
        name=CapabilityName.READ_FILES,
        description=(
            "Reads the content of one or more source code files using file paths or glob patterns."
        ),
        arguments=ReadFilesArgs,
        handler=lambda tb, a: [e.model_dump() for e in tb.workspace.read_entries(a.path)],
    ),
    Capability(
        name=CapabilityName.WRITE_FILE,
        description=(
            "Writes or updates a single file in the codebase. "
            "Automatically creates any necessary parent folders."
        ),
        arguments=WriteFileArgs,
        handler=lambda tb, a: tb.workspace.write_entry(a.path, a.content),
    ),
    Capability(
        name=CapabilityName.DELETE_FILE,
        description=(
            "Deletes a file from the codebase. If the file doesn't exist, "
            "the operation is silently ignored."
        ),
        arguments=DeleteFileArgs,
        handler=lambda tb, a: tb.workspace.delete_entry(a.path),
    ),
    Capability(
        name=CapabilityName.UPDATE_TASKS,
        description=(
            "Writes the updated AI tasks list to the dedicated file and clears the User tasks. "
            "Run this at least once before the final commit."
        ),
        arguments=UpdateTasksArgs,
        handler=lambda tb, a: tb.backlog.update(a.tasks),
    ),
    Capability(
        name=CapabilityName.COMMIT,
        description=(
            "Finishes the cycle with the provided commit message for the changes made to the "
            "codebase. Upon calling this function, no more updates will be allowed, and the "
            "improvement cycle will end."
        ),
        arguments=CommitArgs,
        handler=lambda tb, a: a.message,
        terminal=True,
    ),
]

REGISTRY: dict[str, Capability] = {c.name.value: c for c in _CAPABILITIES}


def resolve(name: str) -> Capability:
    capability = REGISTRY.get(name)
    if capability is None:
        raise UnknownCapabilityError(
            f"Unknown capability: {name}. Known: {list(REGISTRY)}"
        )
    return capability


def tool_schemas() -> list[dict[str, Any]]:
    return [c.tool_schema() for c in _CAPABILITIES]
