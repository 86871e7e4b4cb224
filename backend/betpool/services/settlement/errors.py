"""Error taxonomy for the settlement engine.

Every error carries the HTTP status the API layer renders and whether the
caller may safely retry the whole (idempotent) operation.
"""


class SettlementError(Exception):
    status_code = 400
    retryable = False

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self):
        return {
            'error': self.message,
            'code': self.__class__.__name__,
            'retryable': self.retryable,
        }


# Validation: rejected before any mutation

class ValidationError(SettlementError):
    status_code = 400


class InvalidScore(ValidationError):
    pass


class InvalidPrediction(ValidationError):
    pass


class InvalidRound(ValidationError):
    pass


# Lookups

class NotFound(SettlementError):
    status_code = 404


class MatchNotFound(NotFound):
    pass


class RoundNotFound(NotFound):
    pass


class TicketNotFound(NotFound):
    pass


# Business-rule violations, never retried automatically

class StateError(SettlementError):
    status_code = 409


class BettingClosed(StateError):
    pass


class IncompleteSettlement(StateError):
    pass


class RoundNotFullySettled(StateError):
    pass


class RoundAlreadySettled(StateError):
    pass


class InvalidTransition(StateError):
    pass


class DuplicateTicket(StateError):
    pass


# Transient

class ConcurrencyConflict(SettlementError):
    status_code = 409
    retryable = True


class PersistenceFailure(SettlementError):
    status_code = 503
    retryable = True
