"""
Domain errors shared by the socket handlers, the HTTP API and the services.

Hierarchy:
- GameError (base; surfaced to the requesting party only)
  - ValidationError    bad input shape or value
  - ConflictError      one-active-game rule, self-join
  - NotFoundError      unknown game or user
  - InvalidStateError  operation not legal in the current status
  - AuthorizationError actor may not perform this mutation
"""


class GameError(Exception):
    code = 'game_error'
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'message': self.message, 'code': self.code}


class ValidationError(GameError):
    code = 'validation_error'
    status_code = 400


class ConflictError(GameError):
    code = 'conflict'
    status_code = 409


class NotFoundError(GameError):
    code = 'not_found'
    status_code = 404


class InvalidStateError(GameError):
    code = 'invalid_state'
    status_code = 409


class AuthorizationError(GameError):
    code = 'forbidden'
    status_code = 403
