"""Text extraction for uploaded learning documents."""
import logging
import re
import zipfile
from io import BytesIO
from typing import List
from xml.etree import ElementTree

import fitz  # PyMuPDF

from models.upload import UploadedFile
from services.errors import ExtractionError

logger = logging.getLogger(__name__)

_WORD_NS = "{http://schemas.openxmlformats.org/wordprocessingml/2006/main}"
_DRAWING_NS = "{http://schemas.openxmlformats.org/drawingml/2006/main}"
_SLIDE_PATTERN = re.compile(r"^ppt/slides/slide(\d+)\.xml$")


class TextExtractor:
    """Converts uploaded documents (PDF, TXT, DOCX, PPTX) into plain text."""

    SUPPORTED_EXTENSIONS = {"pdf", "txt", "docx", "pptx"}

    def extract(self, upload: UploadedFile) -> str:
        """
        Extract plain text from an uploaded file.

        Args:
            upload: The uploaded file

        Returns:
            Extracted text

        Raises:
            ExtractionError: If the format is unsupported or the file is unreadable
        """
        extension = upload.extension
        if extension not in self.SUPPORTED_EXTENSIONS:
            raise ExtractionError(f"Unsupported file format: {extension or 'unknown'}")

        try:
            if extension == "pdf":
                text = self._extract_pdf(upload.content)
            elif extension == "txt":
                text = upload.content.decode("utf-8", errors="replace")
            elif extension == "docx":
                text = self._extract_docx(upload.content)
            else:
                text = self._extract_pptx(upload.content)
        except Exception as e:
            logger.error(f"Failed to extract text from {upload.filename}: {str(e)}", exc_info=True)
            raise ExtractionError(f"Failed to read {upload.filename}: {str(e)}") from e

        logger.info(f"Extracted {len(text)} characters from {upload.filename}")
        return text

    def _extract_pdf(self, content: bytes) -> str:
        pages = []
        with fitz.open(stream=content, filetype="pdf") as pdf_document:
            for page in pdf_document:
                pages.append(page.get_text())
        return "\n".join(pages)

    def _extract_docx(self, content: bytes) -> str:
        with zipfile.ZipFile(BytesIO(content)) as archive:
            root = ElementTree.fromstring(archive.read("word/document.xml"))

        paragraphs = []
        for paragraph in root.iter(f"{_WORD_NS}p"):
            text = "".join(node.text or "" for node in paragraph.iter(f"{_WORD_NS}t"))
            if text:
                paragraphs.append(text)
        return "\n".join(paragraphs)

    def _extract_pptx(self, content: bytes) -> str:
        slides: List[str] = []
        with zipfile.ZipFile(BytesIO(content)) as archive:
            slide_names = sorted(
                (name for name in archive.namelist() if _SLIDE_PATTERN.match(name)),
                key=lambda name: int(_SLIDE_PATTERN.match(name).group(1))
            )
            for name in slide_names:
                root = ElementTree.fromstring(archive.read(name))
                lines = []
                for paragraph in root.iter(f"{_DRAWING_NS}p"):
                    text = "".join(node.text or "" for node in paragraph.iter(f"{_DRAWING_NS}t"))
                    if text:
                        lines.append(text)
                slides.append("\n".join(lines))
        return "\n\n".join(slides)
