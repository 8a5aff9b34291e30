"""Domain-specific errors for eiscpctl."""


class EiscpctlError(Exception):
    """Base error for eiscpctl."""


class ConfigLoadError(EiscpctlError):
    """Raised when reading the configuration file fails."""


class ConfigValidationError(EiscpctlError):
    """Raised when a configuration document does not conform to schema."""


class InvalidArgumentError(EiscpctlError):
    """Raised when a channel value has the wrong shape or range."""


class NotSupportedError(EiscpctlError):
    """Raised for unknown channels, devices or actions."""


class ProtocolError(EiscpctlError):
    """Raised when the receiver is reachable but gives no usable reply."""


class TransportError(EiscpctlError):
    """Base transport error."""


class SessionUnavailableError(TransportError):
    """Raised when a transaction is refused before any I/O."""


class TransportConnectError(TransportError):
    """Raised on TCP connect failures."""


class TransportSendError(TransportError):
    """Raised when writing or reading the socket fails."""


class TransportTimeoutError(TransportError):
    """Raised when the TCP connect does not complete in time."""


class TransportCancelledError(TransportError):
    """Raised when a stop request aborts an in-flight transaction."""
