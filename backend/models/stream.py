"""Streaming data models."""
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class RelayState(str, Enum):
    """States of one streaming channel."""
    OPEN = "open"
    STREAMING = "streaming"
    COMPLETE = "complete"
    ERROR = "error"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self in (RelayState.COMPLETE, RelayState.ERROR, RelayState.TIMEOUT)


@dataclass
class StreamEvent:
    """Event produced by the language model stream: "token", "done" or "error"."""
    type: str
    content: str = ""


@dataclass
class StreamChunk:
    """One incrementally delivered fragment of a streamed answer."""
    index: int
    text: str
    done: bool
    progress: float
    session_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chunk": self.text,
            "done": self.done,
            "progress": self.progress,
            "sessionId": self.session_id,
        }


@dataclass
class RelayEvent:
    """A server-sent event as written to the client."""
    event: str
    data: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None

    def to_sse(self) -> str:
        lines = []
        if self.id is not None:
            lines.append(f"id: {self.id}")
        lines.append(f"event: {self.event}")
        lines.append(f"data: {json.dumps(self.data, ensure_ascii=False)}")
        return "\n".join(lines) + "\n\n"
