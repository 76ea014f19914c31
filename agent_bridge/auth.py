"""Detect engine output that means the user must log in again."""

_AUTH_MARKERS = (
    "/login",
    "auth required",
    "authentication failed",
    "please log in",
)


def looks_like_auth_required(text: str) -> bool:
    """Whether engine error text asks the user to authenticate."""
    normalized = text.lower()
    return any(marker in normalized for marker in _AUTH_MARKERS)
