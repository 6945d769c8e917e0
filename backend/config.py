"""Configuration management for the Campus Study Assistant chat service."""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# API Keys
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Server Configuration
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173"
).split(",")

# Model Configuration
LLM_MODEL = os.getenv("LLM_MODEL", "llama-3.3-70b-versatile")
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.3"))
LLM_TOP_P = float(os.getenv("LLM_TOP_P", "0.8"))
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "2000"))

# Timeouts (seconds)
LLM_DEFAULT_TIMEOUT = float(os.getenv("LLM_DEFAULT_TIMEOUT", "90"))
SYNC_ANSWER_TIMEOUT = float(os.getenv("SYNC_ANSWER_TIMEOUT", "30"))
FILE_ANSWER_TIMEOUT = float(os.getenv("FILE_ANSWER_TIMEOUT", "30"))
STREAM_UPSTREAM_TIMEOUT = float(os.getenv("STREAM_UPSTREAM_TIMEOUT", "90"))
STREAM_TIMEOUT = float(os.getenv("STREAM_TIMEOUT", "120"))

# Worker Pool Configuration
WORKER_CORE_SIZE = int(os.getenv("WORKER_CORE_SIZE", "5"))
WORKER_MAX_SIZE = int(os.getenv("WORKER_MAX_SIZE", "20"))
WORKER_QUEUE_CAPACITY = int(os.getenv("WORKER_QUEUE_CAPACITY", "100"))
WORKER_KEEP_ALIVE = float(os.getenv("WORKER_KEEP_ALIVE", "60"))
WORKER_SHUTDOWN_GRACE = float(os.getenv("WORKER_SHUTDOWN_GRACE", "60"))

# Persistence Retry Configuration
PERSIST_MAX_ATTEMPTS = int(os.getenv("PERSIST_MAX_ATTEMPTS", "3"))
PERSIST_BACKOFF_STEP = float(os.getenv("PERSIST_BACKOFF_STEP", "1.0"))
PERSIST_TRUNCATE_LENGTH = 5000

# Task Store Configuration
TASK_TTL_SECONDS = float(os.getenv("TASK_TTL_SECONDS", "3600"))
TASK_READ_GRACE_SECONDS = float(os.getenv("TASK_READ_GRACE_SECONDS", "300"))

# Content Limits
MAX_ANSWER_LENGTH = 10000
FILE_CONTEXT_LENGTH = 2000
SUMMARY_LENGTH = 200
TITLE_LENGTH = 30
STREAM_EXPECTED_LENGTH = LLM_MAX_TOKENS * 4  # ~4 characters per token

# Uploads
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
ALLOWED_EXTENSIONS = frozenset({"pdf", "doc", "docx", "txt", "ppt", "pptx"})

# Supabase tables
CONVERSATIONS_TABLE = os.getenv("CONVERSATIONS_TABLE", "ai_conversations")
LEARNING_FILES_TABLE = os.getenv("LEARNING_FILES_TABLE", "learning_files")

# User-facing fallback texts
TIMEOUT_FALLBACK = "The AI service timed out. Please retry or shorten your question."
UNAVAILABLE_FALLBACK = "The AI service is temporarily unavailable. Please retry shortly."
EMPTY_FALLBACK = "The AI service returned an empty response. Please retry shortly."

SYSTEM_PROMPT = (
    "You are a personalised study companion on a smart campus. You answer students' "
    "questions about their studies, courses and campus life.\n"
    "Guidelines:\n"
    "1. Be accurate, professional and friendly\n"
    "2. When reference material is provided, base your answer on it\n"
    "3. If the material is insufficient, you may draw on general knowledge but say so\n"
    "4. Structure the answer clearly, using paragraphs and emphasis where helpful"
)

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
