"""
Custom exceptions module
"""


class ClassificationError(Exception):
    """Base class for every error raised inside the classification engine"""
    pass


class RateLimitTimeout(ClassificationError):
    """
    Raised when a rate limiter cannot hand out tokens in time

    Recoverable: the caller moves on to the next provider or the heuristic.

    Attributes:
        provider: provider whose bucket was exhausted
        tokens: number of tokens requested
        timeout: how long the caller waited (seconds)
    """

    def __init__(self, provider: str = None, tokens: int = 1, timeout: float = 0.0):
        self.provider = provider
        self.tokens = tokens
        self.timeout = timeout
        super().__init__(
            f"Rate limiter timeout: could not acquire {tokens} token(s) "
            f"within {timeout:.2f}s"
        )

    def __str__(self):
        message = self.args[0] if self.args else "Rate limiter timeout"
        if self.provider:
            return f"{message} | provider: {self.provider}"
        return message


class BackendError(ClassificationError):
    """
    A scoring backend failed (transport error, non-2xx response, bad payload)

    Attributes:
        provider: provider name
        status_code: HTTP status reported by the backend, if any
    """

    def __init__(self, message: str, provider: str = None, status_code: int = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code

    def __str__(self):
        parts = [self.args[0] if self.args else "Backend error"]
        if self.status_code:
            parts.append(f"status: {self.status_code}")
        if self.provider:
            parts.append(f"provider: {self.provider}")
        return " | ".join(parts)


class ParseError(ClassificationError):
    """A backend response could not be read as an integer score"""
    pass


class AllProvidersExhausted(ClassificationError):
    """Every provider in the fallback chain failed for one prompt"""

    def __init__(self, attempted: list = None, last_error: Exception = None):
        self.attempted = list(attempted or [])
        self.last_error = last_error
        super().__init__(
            f"All providers failed ({', '.join(self.attempted) or 'none configured'})"
        )


class ConfigError(ClassificationError):
    """Invalid or incomplete configuration; fatal at startup"""
    pass


class InvalidThresholdConfig(ConfigError):
    """
    auto_confirm_threshold must be strictly greater than suggest_threshold

    Attributes:
        label: label the thresholds belong to
        auto_confirm_threshold: configured auto-confirm threshold
        suggest_threshold: configured suggest threshold
    """

    def __init__(
        self,
        auto_confirm_threshold: int,
        suggest_threshold: int,
        label: str = None,
        reason: str = None
    ):
        self.label = label
        self.auto_confirm_threshold = auto_confirm_threshold
        self.suggest_threshold = suggest_threshold
        detail = reason or "auto_confirm_threshold must be greater than suggest_threshold"
        target = f" for label '{label}'" if label else ""
        super().__init__(
            f"Invalid thresholds{target}: auto_confirm={auto_confirm_threshold}, "
            f"suggest={suggest_threshold} ({detail})"
        )
