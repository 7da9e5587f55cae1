"""Global constants."""

#: Attribute of ``request.state`` where flow results are exposed downstream.
LOCALS_KEY = "oauth"

REDIRECT_STATUS = 302

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
MULTIPART_CONTENT_TYPE = "multipart/form-data"
JSON_CONTENT_TYPE = "application/json"

NO_STORE = [("Cache-Control", "no-store"), ("Pragma", "no-cache")]


class TokenTypeHint:
    """RFC 7009 token type hints."""

    ACCESS_TOKEN = "access_token"
    REFRESH_TOKEN = "refresh_token"


TOKEN_TYPE_HINTS: tuple[str, ...] = (
    TokenTypeHint.ACCESS_TOKEN,
    TokenTypeHint.REFRESH_TOKEN,
)
