from typing import Optional


class MakuraError(Exception):
    """Base exception for every error raised by makura."""

    pass


class ParseError(MakuraError):
    """
    Raised when inbound content is not well-formed for its declared format,
    or when the format tag itself is not recognised.
    """

    pass


class MappingError(MakuraError):
    """
    Raised when a whole translation fails (parse failure or a structural
    error while building or serializing the target document).

    The original exception is chained as ``__cause__``.
    """

    def __init__(self, message: str, route_id: Optional[str] = None):
        self.route_id = route_id
        super().__init__(message)


class ConfigurationError(MakuraError):
    """
    Raised when a route configuration cannot be found or is invalid.
    """

    def __init__(self, message: str, route_id: Optional[str] = None):
        self.route_id = route_id
        super().__init__(message)


class EncryptionError(MakuraError):
    """Raised when encrypting or decrypting a serialized message fails."""

    pass


class ForwardingError(MakuraError):
    """Raised when delivering a message to a downstream endpoint fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class TranslationError(MakuraError):
    """
    Single descriptive failure surfaced by the Translator facade. Identifies
    the route and chains the underlying cause.
    """

    def __init__(self, message: str, route_id: Optional[str] = None):
        self.route_id = route_id
        super().__init__(message)
