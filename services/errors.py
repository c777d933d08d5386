class ReservationError(Exception):
    """Base for every failure the booking engine surfaces to callers."""
    status_code = 400

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__

    @property
    def kind(self) -> str:
        return self.__class__.__name__


class ValidationError(ReservationError):
    """Malformed or missing input"""
    status_code = 400


class ForbiddenError(ReservationError):
    """Actor may not perform this transition"""
    status_code = 403


class NotFoundError(ReservationError):
    """Referenced record does not exist"""
    status_code = 404


class SlotUnavailableError(ReservationError):
    """Slot is already confirmed or blocked"""
    status_code = 409


class AlreadyClaimedError(ReservationError):
    """Reservation was already claimed by another teacher"""
    status_code = 409


class ConflictError(ReservationError):
    """Change set conflicts with current store state"""
    status_code = 409


class InvalidStateError(ReservationError):
    """Transition not allowed from the current status"""
    status_code = 409
