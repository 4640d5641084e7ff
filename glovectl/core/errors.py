"""Domain-specific errors for glovectl."""


class GlovectlError(Exception):
    """Base error for glovectl."""


class ProfileValidationError(GlovectlError):
    """Raised when a profile file does not conform to schema or semantics."""


class ProfileLoadError(GlovectlError):
    """Raised when loading profile sources fails."""


class DeviceSelectionError(GlovectlError):
    """Raised when a device hint cannot be resolved to a single glove."""


class PatternResolutionError(GlovectlError):
    """Raised when a vibration pattern name cannot be found."""


class StorageError(GlovectlError):
    """Raised when the local data store cannot be read or written."""


class TransportError(GlovectlError):
    """Base transport error."""


class TransportUnavailableError(TransportError):
    """Raised when the Bluetooth adapter is missing or powered off."""


class TransportConnectError(TransportError):
    """Raised on BLE connect failures."""


class TransportSendError(TransportError):
    """Raised when a characteristic read or write fails."""


class TransportTimeoutError(TransportError):
    """Raised when a BLE operation exceeds its time bound."""
