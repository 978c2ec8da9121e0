from pathlib import Path

from taskmill.event_bus import EventBus, TaskmillEvent


class AuditLogger:
    """
    Subscribes to an EventBus and appends every event to a JSONL file.
    """

    def __init__(self, file_path: Path, event_bus: EventBus):
        self.file_path = Path(file_path)
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        event_bus.subscribe(self.log_event)

    def log_event(self, event: TaskmillEvent) -> None:
        with open(self.file_path, "a", encoding="utf-8") as f:
            f.write(event.model_dump_json() + "\n")
