"""Exception hierarchy shared by the stream, analysis and server layers."""


class DundraLiveError(Exception):
    """Base exception for dundra-live errors."""


class StreamError(DundraLiveError):
    """Base exception for transcription stream errors."""


class StreamAlreadyActiveError(StreamError):
    """Raised when start() is called on a stream that is already running."""

    code = "already_active"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__("Transcription is already active")


class RecognizerError(StreamError):
    """Raised when the speech recognizer fails or cannot be opened."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)


class ContextNotFoundError(DundraLiveError):
    """Raised at the command boundary when a session has no game context."""

    code = "context_not_found"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Game context not found for session {session_id}")


class AnalyzerError(DundraLiveError):
    """Raised by a text analyzer when the upstream completion call fails."""


class BackendNotAvailableError(DundraLiveError):
    """Raised when a configured backend's dependencies are not installed."""


class TransportClosedError(DundraLiveError):
    """Raised when sending on a transport whose connection is gone."""
