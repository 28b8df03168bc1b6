"""Error kinds raised by the process and deadline engine.

All of them are recoverable and meant to be surfaced to an operator
verbatim, except ``HolidayLoadError`` which aborts a sweep run.
"""

from __future__ import annotations


class KarinError(Exception):
    """Base class for every engine error."""


class InvalidDateError(KarinError):
    """A date value is missing, NaN or cannot be parsed."""


class InvalidArgumentError(KarinError):
    """A day count or offset is out of range."""


class AlreadyInitializedError(KarinError):
    """Stage deadlines were already instantiated for the case."""

    def __init__(self, stage: str) -> None:
        super().__init__(f"Deadlines for stage {stage!r} already exist")
        self.stage = stage


class NotFoundError(KarinError):
    """Unknown case or deadline."""


class ValidationError(KarinError):
    """Rejected input, e.g. an extension without a reason."""


class IllegalTransitionError(KarinError):
    """The requested stage is not the next allowed stage."""

    def __init__(self, current: str, target: str, expected: str | None) -> None:
        if expected is None:
            message = f"Stage {current!r} is terminal; cannot move to {target!r}"
        else:
            message = (
                f"Cannot move from {current!r} to {target!r}; "
                f"next allowed stage is {expected!r}"
            )
        super().__init__(message)
        self.current = current
        self.target = target
        self.expected = expected


class PreconditionNotMetError(KarinError):
    """One or more stage guards failed. ``missing`` lists every reason."""

    def __init__(self, stage: str, missing: list[str]) -> None:
        super().__init__(
            f"Cannot leave stage {stage!r}: " + "; ".join(missing)
        )
        self.stage = stage
        self.missing = list(missing)


class CyclicDependencyError(KarinError):
    """Deadline templates depend on each other in a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        super().__init__("Cyclic deadline dependency: " + " -> ".join(cycle))
        self.cycle = cycle


class TemplateConfigError(KarinError):
    """Deadline template configuration is malformed."""


class StaleCaseError(KarinError):
    """The case was modified by another writer since it was loaded."""


class HolidayLoadError(KarinError):
    """Holiday data could not be loaded; business days cannot be computed."""
