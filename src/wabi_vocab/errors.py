"""
Exceptions raised by the trainer.
"""


class WabiVocabError(Exception):
    """Base exception for all trainer errors."""
    pass


class InvalidRatingError(WabiVocabError, ValueError):
    """Raised when a rating is not one of Again/Hard/Good/Easy (1-4)."""
    pass


class ValidationError(WabiVocabError, ValueError):
    """Raised when an import payload, CSV file or list config is malformed."""
    pass


class NotFoundError(WabiVocabError, LookupError):
    """Raised when a vocabulary list or card does not exist."""
    pass


class ConflictError(WabiVocabError):
    """Raised when a vocabulary list id is already taken."""
    pass
