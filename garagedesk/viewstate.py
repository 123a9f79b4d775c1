from enum import Enum


class ViewState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    EMPTY = "empty"
    SUBMITTING = "submitting"
    ERROR = "error"
    NOT_FOUND = "not_found"


def state_for(data) -> ViewState:
    if data is None:
        return ViewState.NOT_FOUND
    if isinstance(data, (list, tuple)) and not data:
        return ViewState.EMPTY
    return ViewState.READY


def envelope(data=None, state=None, **extra) -> dict:
    body = {"view_state": (state or state_for(data)).value, "data": data}
    body.update(extra)
    return body
