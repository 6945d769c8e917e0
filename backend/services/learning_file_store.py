"""Learning file storage: uploaded bytes on disk, metadata in Supabase."""
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from supabase import create_client, Client

from config import SUPABASE_URL, SUPABASE_KEY, LEARNING_FILES_TABLE, UPLOAD_DIR
from models.upload import UploadedFile

logger = logging.getLogger(__name__)


class LearningFileStore:
    """Saves uploaded learning files and records their AI-generated summaries."""

    def __init__(
        self,
        upload_dir: str = UPLOAD_DIR,
        supabase_url: str = SUPABASE_URL,
        supabase_key: str = SUPABASE_KEY,
        table_name: str = LEARNING_FILES_TABLE
    ):
        """
        Args:
            upload_dir: Directory the uploaded bytes are written to
            supabase_url: Supabase project URL
            supabase_key: Supabase API key
            table_name: Name of the learning files table

        Raises:
            ValueError: If Supabase credentials are missing
        """
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")

        self.upload_dir = Path(upload_dir)
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.table_name = table_name
        self.client: Client = create_client(supabase_url, supabase_key)
        logger.info(f"LearningFileStore initialized: dir={self.upload_dir}, table={table_name}")

    def save(self, upload: UploadedFile, user_id: str) -> str:
        """
        Store the file bytes and insert its metadata row.

        Returns:
            The new file id
        """
        original_name = Path(upload.filename).name
        if not original_name or original_name in (".", ".."):
            raise ValueError(f"Invalid file name: {upload.filename!r}")

        stored_name = f"{uuid.uuid4()}_{original_name}"
        file_path = self.upload_dir / stored_name
        file_path.write_bytes(upload.content)

        result = self.client.table(self.table_name).insert({
            "user_id": user_id,
            "file_name": stored_name,
            "original_name": original_name,
            "file_path": str(file_path),
            "file_type": upload.extension,
            "file_size": upload.size,
            "upload_time": datetime.now(timezone.utc).isoformat(),
            "status": "active",
        }).execute()

        file_id = str(result.data[0]["id"])
        logger.info(f"Saved learning file {original_name} as {file_id}")
        return file_id

    def update_summary(self, file_id: str, summary: str) -> None:
        self.client.table(self.table_name).update({"summary": summary}).eq("id", file_id).execute()
        logger.debug(f"Updated summary of learning file {file_id}")
