"""
Typed failures raised by the board workflow engine.

Every check runs before any write, so a raised BoardError means nothing was
persisted. `status_code` is the HTTP status the API layer answers with.
"""


class BoardError(Exception):
    """Base class for user-facing engine failures."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(BoardError):
    """Board, step, task, member or parent is missing or belongs to another board."""
    status_code = 404


class InvalidState(BoardError):
    """Operation not allowed in the entity's current lifecycle state."""
    status_code = 409


class CapacityExceeded(BoardError):
    """Target step already holds its maximum number of tasks."""
    status_code = 409


class PositionOutOfRange(BoardError):
    """Requested position has no corresponding slot in the target group."""
    status_code = 422


class AssignmentConflict(BoardError):
    """Assignment state does not allow the requested (un)assignment."""
    status_code = 409


class PreconditionFailed(BoardError):
    """Board or input is not in the shape the operation requires."""
    status_code = 412
