"""Custom exception hierarchy for the terminal client.

Only the client layer raises these. Controllers catch them where the call is
made and turn them into short status messages.
"""


class CiderTuiError(Exception):
    """Base exception for all client errors."""

    pass


class EngineError(CiderTuiError):
    """The playback engine rejected a request or answered with garbage."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class EngineUnavailableError(EngineError):
    """The playback engine could not be reached (refused, timed out)."""

    pass


class StaleResponseError(EngineError):
    """A newer request with the same key was issued while this one was in flight."""

    def __init__(self, request_key: str):
        super().__init__(f"Response for '{request_key}' superseded")
        self.request_key = request_key


class CatalogError(CiderTuiError):
    """Errors resolving catalog items (library id lookup, missing data)."""

    pass


class StationError(CiderTuiError):
    """Errors creating or starting a station."""

    pass


class ConfigurationError(CiderTuiError):
    """Errors related to configuration."""

    pass
