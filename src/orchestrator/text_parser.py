"""
Text Parser - contact details and JSON payloads out of free text

Two jobs: guess a candidate's name, email and phone from a chat message
or resume text, and pull the JSON object out of an LLM reply that may
wrap it in prose or code fences.
"""

import json
import re
from typing import Any, Dict, List, Optional
from loguru import logger

from src.utils.error_handlers import MalformedResponseError


class ContactDetailsParser:
    """
    Best-effort extraction of contact fields.

    Never raises: anything it cannot find comes back as None.
    """

    def __init__(self):
        # Lines that open a resume section, never a name
        self.section_headers = ('summary', 'objective', 'experience', 'profile')

        self._compile_patterns()

    def _compile_patterns(self):
        """Compile regex patterns once"""
        self.email_pattern = re.compile(r'[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}', re.IGNORECASE)
        self.phone_pattern = re.compile(r'\+?\d[\d()\-\s]{8,}\d')
        self.name_label_pattern = re.compile(r'^name[:\-\s]', re.IGNORECASE)
        self.name_label_prefix = re.compile(r'^name[:\-\s]*', re.IGNORECASE)
        self.section_pattern = re.compile(rf'^({"|".join(self.section_headers)})', re.IGNORECASE)

    def extract(self, text: str) -> Dict[str, Optional[str]]:
        """
        Extract contact details.

        Args:
            text: Chat message or resume text

        Returns:
            {"name": ..., "email": ..., "phone": ...}
        """
        if not text or not text.strip():
            return {"name": None, "email": None, "phone": None}

        email_match = self.email_pattern.search(text)
        phone_match = self.phone_pattern.search(text)

        details = {
            "name": self.guess_name(text),
            "email": email_match.group(0) if email_match else None,
            "phone": re.sub(r'\s+', ' ', phone_match.group(0)).strip() if phone_match else None,
        }
        logger.debug(f"Contact details found: {[k for k, v in details.items() if v]}")
        return details

    def guess_name(self, text: str) -> Optional[str]:
        lines = self._lines(text)
        if not lines:
            return None

        for line in lines:
            if self.name_label_pattern.match(line):
                return self.name_label_prefix.sub('', line).strip() or None

        for line in lines[:6]:
            if re.search(r'[@\d]', line):
                continue
            if len(line.split(' ')) > 5:
                continue
            if self.section_pattern.match(line):
                continue
            # Mixed case, like "Jane Doe"; all-caps lines are usually headings
            if line.upper() != line and line.lower() != line:
                return line

        # A line carrying an email or phone number is never a name
        if re.search(r'[@\d]', lines[0]):
            return None
        return lines[0]

    def _lines(self, text: str) -> List[str]:
        return [line.strip() for line in re.split(r'\r?\n', text) if line.strip()]


_contact_parser = ContactDetailsParser()


def extract_contact_details(text: str) -> Dict[str, Optional[str]]:
    return _contact_parser.extract(text)


_JSON_BLOCK = re.compile(r'\{[\s\S]*\}')


def extract_json_block(raw: str) -> Dict[str, Any]:
    """Return the outermost JSON object in an LLM reply."""
    match = _JSON_BLOCK.search(raw or "")
    if not match:
        raise MalformedResponseError("LLM response did not include a JSON payload")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"LLM response JSON could not be parsed: {e}") from e
    if not isinstance(data, dict):
        raise MalformedResponseError("LLM response JSON is not an object")
    return data
