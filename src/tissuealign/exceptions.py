"""Errors raised while aligning two images."""


class AlignmentError(Exception):
    """Base class for alignment failures. The shared transform is never
    modified when one of these is raised."""


class ValidationError(AlignmentError, ValueError):
    """Caller-provided inputs are structurally invalid."""


class ResourceError(AlignmentError, RuntimeError):
    """An image source or renderer could not provide the requested pixels."""


class RegistrationError(AlignmentError, RuntimeError):
    """The correlation solver refused the image pair."""
