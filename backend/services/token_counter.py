"""Token usage estimates using tiktoken."""
import logging
import threading

import tiktoken

logger = logging.getLogger(__name__)

ENCODING_NAME = "o200k_base"

_encoder = None
_encoder_lock = threading.Lock()


def get_encoder():
    """Return the shared tiktoken encoder, loading it on first use."""
    global _encoder
    if _encoder is None:
        with _encoder_lock:
            if _encoder is None:
                _encoder = tiktoken.get_encoding(ENCODING_NAME)
                logger.info(f"Initialized tiktoken encoder ({ENCODING_NAME})")
    return _encoder


def estimate_tokens(*texts: str) -> int:
    """Estimate the combined token count of the given texts."""
    encoder = get_encoder()
    return sum(len(encoder.encode(text)) for text in texts if text)
