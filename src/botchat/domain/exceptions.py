"""Domain exceptions.

Every error raised across module boundaries derives from ChatRelayError so
the API layer can render it with a single handler.
"""


class ChatRelayError(Exception):
    """Base class for domain errors.

    Attributes:
        message: human readable description.
        http_status: status code used when the error reaches an HTTP response.
        extra: additional context for logging (ids, provider, ...).
    """

    http_status = 400

    def __init__(self, message: str, http_status=None, **extra):
        self.message = message
        if http_status is not None:
            self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ValidationError(ChatRelayError):
    """Bad or missing input."""


class NotFound(ChatRelayError):
    """Unknown id."""

    http_status = 404


class ConfigError(ChatRelayError):
    """Malformed custom headers or unresolved credentials."""


class AuthError(ChatRelayError):
    """No API key could be resolved, or the provider rejected it."""

    http_status = 401


class UpstreamError(ChatRelayError):
    """The completion provider failed or could not be reached."""

    http_status = 502
