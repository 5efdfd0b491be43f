"""Exception types for the form engine.

Template evaluation never raises (it degrades to an empty string), and the
merge/context-diff functions are total. Everything else that can fail lands
in one of these classes:

- BlockResolutionError: structurally invalid descriptor configuration
  (missing or cyclic block references, illegal repetition)
- TransportError: a network call returned a non-success status or an
  unreadable body
- DataSourceConfigError: a data source cannot be loaded as configured
"""

from __future__ import annotations

__all__ = [
    "BlockNotFoundError",
    "BlockResolutionError",
    "CircularReferenceError",
    "DataSourceConfigError",
    "DataSourceError",
    "FormEngineError",
    "NotRepeatableError",
    "RepeatableReferenceError",
    "RulesServiceError",
    "SubFormNotFoundError",
    "SubmissionError",
    "TransportError",
]


class FormEngineError(Exception):
    """Base class for all form engine errors."""


class BlockResolutionError(FormEngineError, ValueError):
    """Raised when block references in a descriptor cannot be resolved."""


class BlockNotFoundError(BlockResolutionError):
    """A referenced block id does not exist in the descriptor."""

    def __init__(self, block_id: str, known_ids: list[str]) -> None:
        self.block_id = block_id
        self.known_ids = known_ids
        available = ", ".join(known_ids) or "none"
        super().__init__(
            f'Referenced block "{block_id}" not found. Available blocks: {available}'
        )


class SubFormNotFoundError(BlockResolutionError):
    """A referenced sub-form id is not registered."""

    def __init__(self, sub_form_id: str, known_ids: list[str]) -> None:
        self.sub_form_id = sub_form_id
        self.known_ids = known_ids
        available = ", ".join(known_ids) or "none"
        super().__init__(
            f'Sub-form "{sub_form_id}" not found. Available sub-forms: {available}'
        )


class CircularReferenceError(BlockResolutionError):
    """Block or sub-form references form a cycle.

    Attributes:
        path: The ids visited, ending with the id that closes the cycle.
    """

    def __init__(self, message: str, path: list[str]) -> None:
        self.path = path
        super().__init__(message)


class NotRepeatableError(BlockResolutionError):
    """A block carries a repeatable reference but is not marked repeatable."""


class RepeatableReferenceError(BlockResolutionError):
    """A repeatable reference points at a block that is itself repeatable."""


class DataSourceConfigError(FormEngineError):
    """A data source configuration is incomplete for the requested load path."""


class TransportError(FormEngineError):
    """A remote call failed.

    Attributes:
        status_code: HTTP status of the failed response, if one was received.
        reason: HTTP reason phrase (or a short description of the failure).
    """

    def __init__(
        self, message: str, status_code: int | None = None, reason: str = ""
    ) -> None:
        self.status_code = status_code
        self.reason = reason
        super().__init__(message)


class DataSourceError(TransportError):
    """Loading a data source (directly or through the proxy) failed."""


class RulesServiceError(TransportError):
    """The rules re-hydration endpoint failed."""


class SubmissionError(TransportError):
    """The submission endpoint could not be reached or returned garbage."""
