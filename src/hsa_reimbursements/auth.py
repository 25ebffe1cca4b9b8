"""Bearer-token verification and the per-request user context."""

import logging
from dataclasses import dataclass

from jose import ExpiredSignatureError, JWTError, jwt

from hsa_reimbursements.config import Settings
from hsa_reimbursements.errors import AuthError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """The authenticated caller. Passed explicitly to every ledger operation."""

    user_id: str
    email: str | None = None


def decode_token(token: str, settings: Settings) -> RequestContext:
    """Verify a JWT from the identity provider and return the caller's context."""
    options = {"verify_aud": settings.jwt_audience is not None}
    try:
        claims = jwt.decode(
            token,
            settings.jwt_key,
            algorithms=list(settings.jwt_algorithms),
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options=options,
        )
    except ExpiredSignatureError:
        raise AuthError("Token expired") from None
    except JWTError as e:
        logger.warning("Rejected bearer token: %s", e)
        raise AuthError("Invalid token") from None

    subject = claims.get("sub")
    if not subject or not isinstance(subject, str):
        raise AuthError("Token has no subject")
    email = claims.get("email")
    return RequestContext(user_id=subject, email=email if isinstance(email, str) else None)


def context_from_header(authorization: str | None, settings: Settings) -> RequestContext:
    """Parse an ``Authorization: Bearer <token>`` header value."""
    if not authorization:
        raise AuthError("Not authenticated")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Not authenticated")
    return decode_token(token.strip(), settings)
