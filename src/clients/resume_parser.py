"""Resume intake: text out of PDF and DOCX resumes using pdfplumber and docx2txt."""

from datetime import datetime
from pathlib import Path
from typing import Optional

import docx2txt
import pdfplumber
from loguru import logger

from src.orchestrator.schema import ResumeMetadata
from src.utils.error_handlers import ResumeParseError, UnsupportedFormatError


FILE_TYPES = {
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


def _extract_pdf(path: Path) -> str:
    text_parts = []
    with pdfplumber.open(str(path)) as pdf:
        for page in pdf.pages:
            page_text = page.extract_text()
            if page_text:
                text_parts.append(page_text)
    return "\n".join(text_parts)


def _extract_docx(path: Path) -> str:
    return docx2txt.process(str(path)) or ""


def parse_resume_file(file_path: str | Path) -> str:
    """
    Return the plain text of a resume.

    Raises:
        FileNotFoundError: the file does not exist
        UnsupportedFormatError: the file is not a PDF or DOCX
        ResumeParseError: the file could not be read
    """
    path = Path(file_path)
    extension = path.suffix.lower().lstrip(".")
    if extension not in FILE_TYPES:
        raise UnsupportedFormatError(path.name)
    if not path.exists():
        raise FileNotFoundError(f"Resume file not found: {path}")

    try:
        text = _extract_pdf(path) if extension == "pdf" else _extract_docx(path)
    except Exception as e:
        raise ResumeParseError(f"Failed to extract text from {path.name}: {e}") from e

    logger.info(f"Resume parsed: {path.name} ({len(text)} chars)")
    return text


def build_resume_metadata(file_path: str | Path, parsed_text: Optional[str] = None) -> ResumeMetadata:
    """Describe a resume file, parsing it unless the text is given."""
    path = Path(file_path)
    text = parsed_text if parsed_text is not None else parse_resume_file(path)
    extension = path.suffix.lower().lstrip(".")
    return ResumeMetadata(
        file_name=path.name,
        file_type=FILE_TYPES.get(extension, extension or "unknown"),
        size=path.stat().st_size if path.exists() else 0,
        uploaded_at=datetime.now(),
        parsed_text=text,
    )
