"""
errors.py — Error taxonomy shared by routes, services and loops.

Every failure the engine knows how to reason about is one of these kinds:

  InvalidInputError    malformed coordinates, negative radius, unknown report type
  NotFoundError        entity does not exist (404 at the edge)
  ConflictError        duplicate request (409 at the edge)
  TransientError       store / network trouble; activities retry it
  InvariantViolation   expected "skip this iteration" conditions
  StopRenew            a loop asks to end instead of continuing as new
  FatalError           unusable configuration at startup

Loops only treat InvariantViolation and StopRenew specially; everything
else is logged, forwarded to the error reporter, and retried next cycle.
"""


class AutonomyError(Exception):
    """Base class for all domain errors."""


class InvalidInputError(AutonomyError):
    pass


class NotFoundError(AutonomyError):
    pass


class ConflictError(AutonomyError):
    pass


class TransientError(AutonomyError):
    pass


class DeliveryError(TransientError):
    """The push vendor rejected (part of) a notification request."""

    def __init__(self, message: str, errors=None) -> None:
        super().__init__(message)
        self.errors = errors


class InvariantViolation(AutonomyError):
    pass


class InvalidLocationError(InvariantViolation):
    def __init__(self, message: str = "invalid location") -> None:
        super().__init__(message)


class TooFrequentUpdateError(InvariantViolation):
    def __init__(self, message: str = "too frequent update") -> None:
        super().__init__(message)


class StopRenew(AutonomyError):
    """Raised by a loop step to terminate the workflow without continue-as-new."""


class FatalError(AutonomyError):
    pass
