"""
Response parser - reads a backend reply as an integer score

The wire contract is "a single integer 0-100"; anything else is a parse
failure worth score 0, never an exception for the caller.
"""
import logging
import re
from typing import Optional

from telepocket.exceptions import ParseError
from .error_handler import ErrorHandler
from .scoring_strategy import clamp_score

logger = logging.getLogger(__name__)


class ResponseParser:
    """
    Integer score parser

    Accepts the leading integer of the reply, after stripping markdown fences
    and quotes the models sometimes add.
    """

    MARKDOWN_PATTERNS = [
        (r'^```\w*\s*', ''),
        (r'\s*```$', ''),
    ]

    LEADING_INT = re.compile(r'^[+-]?\d+')

    @staticmethod
    def clean_content(content: str) -> str:
        """
        Strip markdown fences, quotes and whitespace

        Args:
            content: raw backend reply

        Returns:
            str: cleaned reply
        """
        if not content:
            return ""

        cleaned = content.strip()
        for pattern, replacement in ResponseParser.MARKDOWN_PATTERNS:
            cleaned = re.sub(pattern, replacement, cleaned)

        return cleaned.strip().strip('"\'`').strip()

    @classmethod
    def parse_int(cls, content: Optional[str]) -> int:
        """
        Parse the leading integer of a reply

        Raises:
            ParseError: no leading integer
        """
        if content is None:
            raise ParseError("empty response")

        cleaned = cls.clean_content(content)
        match = cls.LEADING_INT.match(cleaned)
        if not match:
            raise ParseError(f"not an integer: {content[:50]!r}")
        return int(match.group(0))

    @classmethod
    def parse_score(cls, content: Optional[str], context: str = "score") -> int:
        """
        Parse and clamp a score, defaulting to 0

        Args:
            content: raw backend reply
            context: label name, for logs

        Returns:
            int: score clamped to 0-100, 0 when unparseable
        """
        try:
            raw = cls.parse_int(content)
        except ParseError as e:
            ErrorHandler.log_error(
                context=f"parse {context}",
                error=e,
                logger=logger,
                level='warning'
            )
            return 0

        score = clamp_score(raw)
        logger.debug(f"[{context}] raw={content!r} parsed={raw} clamped={score}")
        return score
