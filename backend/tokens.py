"""
Access and refresh token signing.

Access tokens go through Flask-JWT-Extended so the same secret, lifetime and
cookie settings drive both issuance and the request gate. Refresh tokens are
signed with PyJWT under their own secret and lifetime, which keeps the two
contexts independent: a token from one never verifies in the other.
"""

from datetime import datetime, timedelta, timezone

import jwt
from flask_jwt_extended import create_access_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException

from errors import TokenExpiredError, TokenInvalidError

ACCESS = "access"
REFRESH = "refresh"
TOKEN_ALGORITHM = "HS256"


class TokenIssuer:
    def __init__(self, refresh_secret: str, refresh_ttl: timedelta):
        self.refresh_secret = refresh_secret
        self.refresh_ttl = refresh_ttl

    def issue(self, account_id, kind: str = ACCESS) -> str:
        identity = str(account_id)
        if kind == ACCESS:
            return create_access_token(identity=identity)
        if kind == REFRESH:
            now = datetime.now(timezone.utc)
            payload = {
                "sub": identity,
                "type": REFRESH,
                "iat": now,
                "exp": now + self.refresh_ttl,
            }
            return jwt.encode(payload, self.refresh_secret, algorithm=TOKEN_ALGORITHM)
        raise ValueError(f"Unknown token kind: {kind}")

    def verify(self, token: str, kind: str = ACCESS) -> str:
        """Return the account id carried by ``token``.

        Raises ``TokenExpiredError`` for a well-signed token past its expiry
        and ``TokenInvalidError`` for anything else that fails to verify.
        """
        if not token:
            raise TokenInvalidError()
        try:
            if kind == ACCESS:
                claims = decode_token(token)
            elif kind == REFRESH:
                claims = jwt.decode(
                    token, self.refresh_secret, algorithms=[TOKEN_ALGORITHM]
                )
                if claims.get("type") != REFRESH:
                    raise TokenInvalidError()
            else:
                raise ValueError(f"Unknown token kind: {kind}")
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpiredError() from exc
        except (jwt.InvalidTokenError, JWTExtendedException) as exc:
            raise TokenInvalidError() from exc

        identity = claims.get("sub")
        if not identity:
            raise TokenInvalidError()
        return str(identity)
