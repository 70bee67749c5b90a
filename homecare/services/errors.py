"""
Domain errors raised by the booking engine.

Each error carries a stable ``code`` so the dashboard can show a localized
message for the exact action that failed.
"""


class BookingEngineError(Exception):
    code = "booking_engine_error"
    status_code = 400

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class BookingNotFound(BookingEngineError):
    code = "booking_not_found"
    status_code = 404


class ValidationFailed(BookingEngineError):
    code = "validation_failed"
    status_code = 422


class PhaseNotReady(BookingEngineError):
    code = "phase_not_ready"
    status_code = 409


class InvalidTransition(BookingEngineError):
    code = "invalid_transition"
    status_code = 409


class ProviderNotEligible(BookingEngineError):
    code = "provider_not_eligible"
    status_code = 409


class PersistenceFailed(BookingEngineError):
    code = "persistence_failed"
    status_code = 503
