"""Uploaded file model."""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class UploadedFile:
    """A file received with a chat request, fully read into memory."""
    filename: str
    content: bytes
    content_type: Optional[str] = None

    @property
    def extension(self) -> str:
        """Lower-case extension without the dot, or "" when there is none."""
        if not self.filename or "." not in self.filename:
            return ""
        return self.filename.rsplit(".", 1)[1].lower()

    @property
    def size(self) -> int:
        return len(self.content)
