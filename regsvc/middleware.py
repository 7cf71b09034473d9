"""Bearer-token authentication for incoming requests."""

from __future__ import annotations

from typing import Any, Mapping, Protocol

from regsvc import log
from regsvc.log import SUB_KEY, USERNAME_KEY, RequestContext

USER_ID_KEY = "user_id"
ACCOUNT_ID_KEY = "account_id"
EMAIL_KEY = "email"
ORIGINAL_SUB_KEY = "original_sub"
GIVEN_NAME_KEY = "given_name"
FAMILY_NAME_KEY = "family_name"
COMPANY_KEY = "company"
JWT_CLAIMS_KEY = "jwtClaims"

_BEARER_PREFIX = "Bearer "
_NO_PARSER_MESSAGE = "no default TokenParser created, call `InitializeDefaultTokenParser()` first"


class _TokenParser(Protocol):
    def from_string(self, token: str) -> Any: ...


class AuthError(Exception):
    """The request could not be authenticated."""

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def payload(self) -> dict[str, str]:
        """The JSON body sent back to the client."""
        return {"error": self.message}


def _header(headers: Mapping[str, Any], name: str) -> str:
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() != wanted:
            continue
        if isinstance(value, str):
            return value
        return next(iter(value), "")
    return ""


def _claim(token: Any, name: str) -> str:
    value = getattr(token, name, "")
    return value if isinstance(value, str) else ""


class JWTMiddleware:
    """Validates the bearer token of a request and stores its claims in the context."""

    def __init__(self, token_parser: _TokenParser):
        self.token_parser = token_parser

    def extract_token(self, headers: Mapping[str, Any]) -> str:
        """Return the token from the Authorization header; raise AuthError if absent or malformed."""
        header_token = _header(headers, "Authorization")
        if not header_token:
            raise AuthError("no token found")
        if header_token.startswith(_BEARER_PREFIX):
            fields = header_token.split()
            if len(fields) == 2:
                return fields[1]
            raise AuthError("found bearer token header, but no token:" + header_token)
        raise AuthError("found unknown authorization header:" + header_token)

    def handle(self, ctx: RequestContext) -> Any:
        """Authenticate the request of ``ctx``, fill in its claims and return the parsed token."""
        headers = ctx.request.headers if ctx.request is not None else {}
        token_str = self.extract_token(headers)
        try:
            token = self.token_parser.from_string(token_str)
        except Exception as exc:
            raise AuthError(str(exc)) from exc

        user_id = _claim(token, "user_id")
        account_id = _claim(token, "account_id")
        if not user_id or not account_id:
            parts = token_str.split(".")
            raw_claims = parts[1] if len(parts) >= 2 else ""
            log.infof(
                ctx,
                "Missing essential claims from token - [user_id:%s][account_id:%s] for user [%s], "
                "sub [%s].  Raw claims segment: [%s]",
                user_id,
                account_id,
                _claim(token, "preferred_username"),
                _claim(token, "subject"),
                raw_claims,
            )

        ctx.set(USER_ID_KEY, user_id)
        ctx.set(ACCOUNT_ID_KEY, account_id)
        ctx.set(USERNAME_KEY, _claim(token, "preferred_username"))
        ctx.set(EMAIL_KEY, _claim(token, "email"))
        ctx.set(SUB_KEY, _claim(token, "subject"))
        ctx.set(ORIGINAL_SUB_KEY, _claim(token, "original_sub"))
        ctx.set(GIVEN_NAME_KEY, _claim(token, "given_name"))
        ctx.set(FAMILY_NAME_KEY, _claim(token, "family_name"))
        ctx.set(COMPANY_KEY, _claim(token, "company"))
        ctx.set(JWT_CLAIMS_KEY, token)
        return token


def new_auth_middleware(token_parser: _TokenParser | None) -> JWTMiddleware:
    """Create the middleware; a token parser must have been set up beforehand."""
    if token_parser is None:
        raise RuntimeError(_NO_PARSER_MESSAGE)
    return JWTMiddleware(token_parser)