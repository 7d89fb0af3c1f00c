"""Upstream API token extraction for the streaming gateway.

Callers bring their own provider token in a fixed request header. The
token is read from the raw header bytes so that values which are not
valid UTF-8 can be rejected before any upstream call is made.
"""

from typing import Iterable, Tuple

TOKEN_HEADER = "X-Anthropic-API-Token"


class AuthenticationError(Exception):
    """Raised when the upstream token header is missing or malformed."""

    def __init__(self, detail: str, status_code: int, error_type: str) -> None:
        self.detail = detail
        self.status_code = status_code
        self.error_type = error_type
        super().__init__(detail)


def extract_api_token(raw_headers: Iterable[Tuple[bytes, bytes]]) -> str:
    """Return the upstream API token carried by the request.

    Args:
        raw_headers: The request's raw ``(name, value)`` header pairs, as
            found in ``request.headers.raw``.

    Returns:
        The decoded token.

    Raises:
        AuthenticationError: 401 if the header is absent, 400 if its value
            is empty or not valid UTF-8.
    """
    wanted = TOKEN_HEADER.lower().encode("latin-1")
    for name, value in raw_headers:
        if name.lower() != wanted:
            continue
        try:
            token = value.decode("utf-8").strip()
        except UnicodeDecodeError:
            raise AuthenticationError(
                "Invalid {} header value.".format(TOKEN_HEADER), 400, "bad_request"
            )
        if not token:
            raise AuthenticationError(
                "Invalid {} header value.".format(TOKEN_HEADER), 400, "bad_request"
            )
        return token

    raise AuthenticationError(
        "Missing {} header.".format(TOKEN_HEADER), 401, "missing_header"
    )


def describe_token(token: str) -> str:
    """Return a loggable description of a token that does not reveal it."""
    return "<token len={}>".format(len(token))
