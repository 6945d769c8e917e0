"""Main entry point for the Campus Study Assistant chat API."""
import logging
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, Header, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from config import (
    CORS_ORIGINS,
    LOG_FORMAT,
    LOG_LEVEL,
    PORT,
    WORKER_CORE_SIZE,
    WORKER_KEEP_ALIVE,
    WORKER_MAX_SIZE,
    WORKER_QUEUE_CAPACITY,
    WORKER_SHUTDOWN_GRACE,
)
from logger import setup_logging
from models.api import (
    ChatAnswer,
    ConversationView,
    RateRequest,
    RenameSessionRequest,
    SessionView,
    TaskAccepted,
    TaskStatusView,
    envelope,
)
from models.upload import UploadedFile
from services.auth_validator import AuthValidator
from services.chat_gateway import ChatGateway, ChatRequest
from services.conversation_persistence import ConversationPersistence
from services.conversation_store import ConversationStore
from services.errors import ChatServiceError
from services.learning_file_store import LearningFileStore
from services.llm_client import LLMClient
from services.stream_relay import StreamRelay
from services.task_store import TaskStore
from services.worker_pool import WorkerPool

if LOG_FORMAT == "json":
    setup_logging(LOG_LEVEL)

# Initialize logging
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Campus Study Assistant",
    description="AI question answering for students, with file-grounded and streamed answers",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Session-Id", "X-Task-Id"],
)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

# Initialize services (will be done on startup)
gateway: ChatGateway = None
worker_pool: WorkerPool = None
task_store: TaskStore = None


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    global gateway, worker_pool, task_store

    logger.info("Initializing Campus Study Assistant services...")

    try:
        worker_pool = WorkerPool(
            core_workers=WORKER_CORE_SIZE,
            max_workers=WORKER_MAX_SIZE,
            queue_capacity=WORKER_QUEUE_CAPACITY,
            keep_alive=WORKER_KEEP_ALIVE
        )
        task_store = TaskStore()

        conversation_store = ConversationStore()
        logger.info("Initialized ConversationStore")

        gateway = ChatGateway(
            llm_client=LLMClient(),
            worker_pool=worker_pool,
            task_store=task_store,
            persistence=ConversationPersistence(conversation_store, worker_pool=worker_pool),
            conversation_store=conversation_store,
            file_store=LearningFileStore(),
            auth_validator=AuthValidator()
        )
        logger.info("All services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise


@app.on_event("shutdown")
async def shutdown_event():
    """Drain the worker pool and drop task state."""
    if worker_pool is not None:
        cancelled = await run_in_threadpool(worker_pool.shutdown, WORKER_SHUTDOWN_GRACE)
        if cancelled:
            logger.warning(f"{cancelled} queued units were never run")
    if task_store is not None:
        task_store.clear()
    logger.info("Campus Study Assistant services stopped")


@app.exception_handler(ChatServiceError)
async def chat_service_error_handler(request: Request, exc: ChatServiceError):
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(code=exc.status_code, message=exc.message)
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content=envelope(data=jsonable_encoder(exc.errors()), code=400, message="Invalid request")
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error on {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=envelope(code=500, message="Internal server error")
    )


def current_user(authorization: Optional[str] = Header(None)) -> str:
    """Resolve the caller from the Authorization header."""
    return gateway.authenticate(authorization)


async def _relay_events(relay: StreamRelay):
    """Pull relay events off the threadpool and render them as SSE frames."""
    try:
        while True:
            event = await run_in_threadpool(relay.next_event)
            if event is None:
                break
            yield event.to_sse()
    finally:
        # No-op when the relay already finished; otherwise the client left early.
        relay.disconnect()


def _stream_response(relay: StreamRelay, session_id: str, task_id: str) -> StreamingResponse:
    headers = dict(SSE_HEADERS)
    headers["X-Session-Id"] = session_id
    headers["X-Task-Id"] = task_id
    return StreamingResponse(_relay_events(relay), media_type="text/event-stream", headers=headers)


async def _read_upload(file: Optional[UploadFile]) -> Optional[UploadedFile]:
    if file is None or not file.filename:
        return None
    content = await file.read()
    return UploadedFile(filename=file.filename, content=content, content_type=file.content_type)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Campus Study Assistant API"}


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "campus-study-assistant",
        "version": "1.0.0"
    }


@app.post("/chat")
async def chat_endpoint(
    question: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    session_id: Optional[str] = Form(None, alias="sessionId"),
    stream: bool = Form(False),
    user_id: str = Depends(current_user)
):
    """
    Ask a question.

    Returns:
        - 200 with the answer for a plain question
        - 202 with a task id when a file is attached (poll /chat/task/{taskId})
        - a text/event-stream response when stream is true
    """
    upload = await _read_upload(file)
    outcome = await run_in_threadpool(
        gateway.chat,
        ChatRequest(
            user_id=user_id,
            question=question or "",
            file=upload,
            session_id=session_id,
            stream=stream
        )
    )

    if outcome.kind == "stream":
        return _stream_response(outcome.relay, outcome.session_id, outcome.task_id)

    if outcome.kind == "task":
        return JSONResponse(
            status_code=202,
            content=envelope(
                TaskAccepted(task_id=outcome.task_id, session_id=outcome.session_id),
                code=202,
                message="File accepted for processing"
            )
        )

    return envelope(ChatAnswer(answer=outcome.answer, session_id=outcome.session_id))


@app.post("/chat/stream")
async def chat_stream_endpoint(
    question: Optional[str] = Form(None),
    session_id: Optional[str] = Form(None, alias="sessionId"),
    user_id: str = Depends(current_user)
):
    """Ask a question and receive the answer as Server-Sent Events."""
    outcome = await run_in_threadpool(
        gateway.chat,
        ChatRequest(user_id=user_id, question=question or "", session_id=session_id, stream=True)
    )
    return _stream_response(outcome.relay, outcome.session_id, outcome.task_id)


@app.get("/chat/task/{task_id}")
async def task_status_endpoint(task_id: str, user_id: str = Depends(current_user)):
    task = gateway.task_status(task_id, user_id)
    return envelope(TaskStatusView.from_task(task))


@app.get("/chat/status")
async def pool_status_endpoint(user_id: str = Depends(current_user)):
    """Worker pool and task store gauges."""
    return envelope(gateway.pool_status())


@app.get("/chat/history")
def history_endpoint(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    limit: int = Query(50, ge=1, le=200),
    user_id: str = Depends(current_user)
):
    """Recent conversation records, newest first."""
    records = gateway.history(user_id, session_id=session_id, limit=limit)
    return envelope([ConversationView.from_record(record) for record in records])


@app.get("/chat/sessions")
def sessions_endpoint(user_id: str = Depends(current_user)):
    summaries = gateway.sessions(user_id)
    return envelope([SessionView.from_summary(summary) for summary in summaries])


@app.get("/chat/history/{session_id}")
def session_history_endpoint(session_id: str, user_id: str = Depends(current_user)):
    """All records of one session in the order they were asked."""
    records = gateway.session_history(user_id, session_id)
    return envelope([ConversationView.from_record(record) for record in records])


@app.delete("/chat/session/{session_id}")
def delete_session_endpoint(session_id: str, user_id: str = Depends(current_user)):
    deleted = gateway.delete_session(user_id, session_id)
    return envelope({"deleted": deleted}, message="Session deleted")


@app.put("/chat/session/{session_id}")
def rename_session_endpoint(
    session_id: str,
    body: RenameSessionRequest,
    user_id: str = Depends(current_user)
):
    updated = gateway.rename_session(user_id, session_id, body.title)
    return envelope({"updated": updated}, message="Session renamed")


@app.post("/chat/rate/{conversation_id}")
def rate_endpoint(conversation_id: str, body: RateRequest, user_id: str = Depends(current_user)):
    record = gateway.rate(user_id, conversation_id, body.rating)
    return envelope(ConversationView.from_record(record), message="Rating saved")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
