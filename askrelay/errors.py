"""
Exceptions that cross module boundaries.

Only validation and inference failures ever reach the caller of the ask
operation. Parse failures, tool failures and loop exhaustion are values,
folded back into the conversation instead of being raised.
"""


class AskRelayError(Exception):
    """Base class for AskRelay errors."""


class InvalidQuestionError(AskRelayError):
    """The question was missing or blank; no loop is started."""


class InferenceError(AskRelayError):
    """The inference call itself failed. Fatal for the request, never retried."""


class ConfigurationError(AskRelayError):
    """A required setting is missing at startup."""
