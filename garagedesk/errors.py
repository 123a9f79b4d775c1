"""
Error taxonomy shared by the core, the API gateway and the views.

Local validation failures and server rejections share ValidationError; the
``remote`` flag tells the views which of the two they are looking at.
"""


class GarageDeskError(Exception):
    status_code = 500
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def __str__(self):
        return self.message


class ValidationError(GarageDeskError):
    status_code = 422

    def __init__(self, message: str, fields=None, remote: bool = False):
        super().__init__(message)
        self.fields = dict(fields or {})
        self.remote = remote


class IllegalTransitionError(ValidationError):
    status_code = 409

    def __init__(self, kind: str, current, action):
        current_name = getattr(current, "value", current)
        action_name = getattr(action, "value", action)
        super().__init__(
            f"Cannot {action_name} a {kind} in status {current_name}.",
            fields={"status": current_name},
        )
        self.kind = kind
        self.current = current
        self.action = action


class ConflictError(GarageDeskError):
    status_code = 409


class NotFoundError(GarageDeskError):
    status_code = 404


class NetworkError(GarageDeskError):
    status_code = 503
    retryable = True


class AuthenticationError(GarageDeskError):
    status_code = 401


class MutationInFlightError(GarageDeskError):
    status_code = 429

    def __init__(self, key):
        super().__init__("This action is already in progress.")
        self.key = key
