"""Per-request relay that forwards streamed answer chunks to the client."""
import logging
import queue
import threading
from typing import Callable, Iterable, Iterator, List, Optional

from config import STREAM_EXPECTED_LENGTH, STREAM_TIMEOUT
from models.stream import RelayEvent, RelayState, StreamChunk, StreamEvent

logger = logging.getLogger(__name__)

_CLOSED = object()


def heuristic_chunk_size(expected_length: int) -> int:
    """Default chunking strategy: about 40 chunks per answer, clamped to 50..200 characters."""
    return min(200, max(50, expected_length // 40))


class StreamRelay:
    """
    Push channel for one streaming request.

    State machine: OPEN -> STREAMING -> COMPLETE | ERROR | TIMEOUT.

    Text fragments arriving from the model are re-cut into chunks of
    ``chunk_size`` characters. A full chunk is forwarded as soon as more
    text is known to follow, so the last chunk, and only the last, is sent
    with ``done=True`` and ``progress=1.0`` when the producer calls
    complete(). An answer of length L therefore yields ceil(L / chunk_size)
    chunks (one empty chunk when L is 0).

    Once the relay is terminal further input is dropped. Only COMPLETE hands
    the assembled answer to ``on_complete``; disconnects, errors and
    timeouts never do.
    """

    def __init__(
        self,
        session_id: str,
        chunk_size: Optional[int] = None,
        timeout_seconds: float = STREAM_TIMEOUT,
        expected_length: int = STREAM_EXPECTED_LENGTH,
        on_complete: Optional[Callable[[str], None]] = None,
        chunk_sizer: Callable[[int], int] = heuristic_chunk_size
    ):
        """
        Args:
            session_id: Session the streamed answer belongs to
            chunk_size: Fixed chunk size; derived from chunk_sizer when omitted
            timeout_seconds: Watchdog duration started by open()
            expected_length: Expected answer length, used for sizing and progress
            on_complete: Receives the full answer after a normal completion
            chunk_sizer: Strategy mapping expected length to chunk size
        """
        self.session_id = session_id
        self.chunk_size = chunk_size or chunk_sizer(expected_length)
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        self.timeout_seconds = timeout_seconds
        self.expected_length = max(1, expected_length)
        self.on_complete = on_complete

        self._state = RelayState.OPEN
        self._buffer = ""
        self._parts: List[str] = []
        self._emitted_chars = 0
        self._next_index = 0
        self._dropped = 0
        self._channel: "queue.Queue" = queue.Queue()
        self._lock = threading.Lock()
        self._watchdog: Optional[threading.Timer] = None

    @property
    def state(self) -> RelayState:
        return self._state

    def open(self) -> None:
        """Start the timeout watchdog."""
        with self._lock:
            if self._watchdog is not None or self._state.is_terminal:
                return
            self._watchdog = threading.Timer(self.timeout_seconds, self._expire)
            self._watchdog.daemon = True
            self._watchdog.start()
        logger.info(f"Stream opened: session={self.session_id}, chunk_size={self.chunk_size}")

    def push(self, fragment: str) -> bool:
        """
        Accept a text fragment from the model.

        Returns:
            False if the relay is already terminal and the fragment was dropped
        """
        with self._lock:
            if self._state.is_terminal:
                self._dropped += 1
                return False
            self._state = RelayState.STREAMING
            self._parts.append(fragment)
            self._buffer += fragment
            while len(self._buffer) > self.chunk_size:
                self._emit(self._buffer[:self.chunk_size], done=False)
                self._buffer = self._buffer[self.chunk_size:]
        return True

    def complete(self) -> Optional[str]:
        """
        Flush the final chunk, close the channel and hand off the answer.

        Returns:
            The assembled answer, or None if the relay had already terminated
        """
        with self._lock:
            if self._state.is_terminal:
                logger.info(
                    f"Stream for session {self.session_id} already {self._state.value}, "
                    f"not completing"
                )
                return None
            self._emit(self._buffer, done=True)
            self._buffer = ""
            self._state = RelayState.COMPLETE
            self._close()
            answer = "".join(self._parts)

        logger.info(
            f"Stream complete: session={self.session_id}, chunks={self._next_index}, "
            f"length={len(answer)}"
        )
        if self.on_complete is not None:
            self.on_complete(answer)
        return answer

    def fail(self, message: str) -> bool:
        """Terminate with an error event carrying user-facing text."""
        with self._lock:
            if self._state.is_terminal:
                return False
            self._state = RelayState.ERROR
            self._channel.put(RelayEvent(
                event="error",
                data={"error": True, "message": message, "sessionId": self.session_id}
            ))
            self._close()
        logger.warning(f"Stream failed: session={self.session_id}, message={message}")
        return True

    def disconnect(self) -> bool:
        """The client went away: drop whatever is left, silently."""
        with self._lock:
            if self._state.is_terminal:
                return False
            self._state = RelayState.ERROR
            self._close()
        logger.info(f"Client disconnected mid-stream: session={self.session_id}")
        return True

    def events(self) -> Iterator[RelayEvent]:
        """Yield channel events until the relay closes."""
        while True:
            item = self._channel.get()
            if item is _CLOSED:
                return
            yield item

    def next_event(self) -> Optional[RelayEvent]:
        """Block for the next event; None once the relay has closed."""
        item = self._channel.get()
        if item is _CLOSED:
            # Leave the marker for any other reader.
            self._channel.put(_CLOSED)
            return None
        return item

    def _expire(self) -> None:
        with self._lock:
            if self._state.is_terminal:
                return
            self._state = RelayState.TIMEOUT
            self._channel.put(RelayEvent(
                event="timeout",
                data={
                    "error": True,
                    "message": "The response timed out. Please retry.",
                    "sessionId": self.session_id,
                }
            ))
            self._close()
        logger.warning(
            f"Stream timed out after {self.timeout_seconds}s: session={self.session_id}, "
            f"partial answer discarded"
        )

    def _emit(self, text: str, done: bool) -> None:
        # Caller holds self._lock
        self._emitted_chars += len(text)
        if done:
            progress = 1.0
        else:
            progress = round(min(0.99, self._emitted_chars / self.expected_length), 4)
        chunk = StreamChunk(
            index=self._next_index,
            text=text,
            done=done,
            progress=progress,
            session_id=self.session_id
        )
        self._next_index += 1
        self._channel.put(RelayEvent(event="message", data=chunk.to_dict(), id=chunk.index))
        logger.debug(f"Queued chunk {chunk.index}: length={len(text)}, done={done}")

    def _close(self) -> None:
        # Caller holds self._lock
        if self._watchdog is not None:
            self._watchdog.cancel()
        self._channel.put(_CLOSED)


def relay_model_stream(relay: StreamRelay, events: Iterable[StreamEvent]) -> Optional[str]:
    """
    Forward a model event stream into a relay.

    The upstream call is consumed to its end even when the relay has gone
    terminal (client disconnect or timeout); the leftover fragments are
    dropped.

    Returns:
        The assembled answer on normal completion, otherwise None
    """
    relay.open()
    dropped = 0
    for event in events:
        if event.type == "token":
            if not relay.push(event.content):
                dropped += 1
        elif event.type == "done":
            if dropped:
                logger.info(f"Dropped {dropped} fragments for session {relay.session_id}")
            return relay.complete()
        elif event.type == "error":
            relay.fail(event.content)
            return None

    relay.fail("The response ended unexpectedly. Please retry.")
    return None
