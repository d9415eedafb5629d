"""
Error handler - uniform error logging and degraded default results

Every recoverable failure in the scoring path ends up here: it is logged once
and replaced by a valid "no score" LabelScore.
"""

from telepocket.models import LabelScore, LabelDefinition
from telepocket.constants import ConfidenceTier, LabelAction, ScoreSource


class ErrorHandler:
    """
    Central error handler

    Keeps error messages and the degraded-result shape in one place.
    """

    ERROR_MESSAGES = {
        'rate_limit': "Rate limiter timeout",
        'backend': "Backend call failed",
        'timeout': "Backend call timed out",
        'persist': "Persisting label failed",
        'general': "Processing failed",
    }

    RATE_LIMIT = 'rate_limit'
    BACKEND = 'backend'
    TIMEOUT = 'timeout'
    PERSIST = 'persist'
    GENERAL = 'general'

    @classmethod
    def describe(cls, error_type: str) -> str:
        return cls.ERROR_MESSAGES.get(error_type, cls.ERROR_MESSAGES['general'])

    @classmethod
    def default_label_score(cls, label: LabelDefinition) -> LabelScore:
        """
        Degraded-but-valid score for a label whose scoring failed

        Args:
            label: label that could not be scored

        Returns:
            LabelScore: score 0, tier insufficient, action skip
        """
        return LabelScore(
            label=label.name,
            score=0,
            tier=ConfidenceTier.INSUFFICIENT,
            action=LabelAction.SKIP,
            source=ScoreSource.NONE
        )

    @staticmethod
    def log_error(
        context: str,
        error: Exception,
        logger=None,
        level: str = 'error'
    ):
        """
        Log an error with its context

        Args:
            context: where the error happened
            error: exception object
            logger: logger to write to
            level: log level ('error', 'warning' or 'info')
        """
        message = f"[{context}] {type(error).__name__}: {error}"

        if logger:
            if level == 'error':
                logger.error(message)
            elif level == 'warning':
                logger.warning(message)
            else:
                logger.info(message)
        else:
            print(message)
