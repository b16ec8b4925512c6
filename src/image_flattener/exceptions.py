"""Custom exceptions for the image flattener."""


class FlattenError(Exception):
    """Base exception for all flattening errors."""

    pass


class MalformedImageError(FlattenError):
    """Raised when the unpacked image tree is missing or has invalid metadata."""

    pass


class CyclicChainError(MalformedImageError):
    """Raised when parent pointers loop back onto an already visited layer."""

    pass


class InvalidNameVersionError(FlattenError):
    """Raised when the output name does not match ``<name>:<version>``."""

    pass


class ExternalToolError(FlattenError):
    """Raised when an archive operation fails."""

    pass


class ArchiveTimeoutError(ExternalToolError):
    """Raised when an archive operation is cancelled after its timeout."""

    pass
