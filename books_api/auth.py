import hmac
import time
from collections.abc import Iterable
from typing import Any

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

# auto_error is off so a missing header is a 401 like any other bad token.
bearer = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def check_credentials(username: str, password: str, *, expected_username: str, expected_password: str) -> bool:
    # Demo check against one configured pair. Replace with a real user store.
    username_ok = hmac.compare_digest(username.encode(), expected_username.encode())
    password_ok = hmac.compare_digest(password.encode(), expected_password.encode())
    return username_ok and password_ok


class TokenIssuer:
    def __init__(
        self,
        secret: str,
        issuer: str,
        audience: str,
        algorithm: str = "HS256",
        ttl_seconds: int = 3600,
    ):
        self.secret = secret
        self.issuer = issuer
        self.audience = audience
        self.algorithm = algorithm
        self.ttl_seconds = ttl_seconds

    def issue(self, subject: str) -> str:
        now = int(time.time())
        payload = {
            "sub": subject,
            "name": subject,
            "iat": now,
            "exp": now + self.ttl_seconds,
            "iss": self.issuer,
            "aud": self.audience,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)


class AuthVerifier:
    def __init__(
        self,
        secret: str,
        issuer: str,
        audience: str,
        allowed_algs: Iterable[str] | None = None,
        clock_skew_seconds: int = 30,
    ):
        self.secret = secret
        self.issuer = issuer
        self.audience = audience
        self.allowed_algs: set[str] = set(allowed_algs or {"HS256"})
        self.clock_skew_seconds = clock_skew_seconds

    def __call__(self, creds: HTTPAuthorizationCredentials | None = Depends(bearer)) -> dict[str, Any]:
        if creds is None:
            raise _unauthorized("Not authenticated")

        token = creds.credentials
        try:
            unverified_header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as exc:
            raise _unauthorized("Invalid token header") from exc

        typ = unverified_header.get("typ", "JWT")
        alg = unverified_header.get("alg")
        if typ.upper() != "JWT":
            raise _unauthorized("Invalid token type")
        if alg not in self.allowed_algs:
            raise _unauthorized("Invalid token algorithm")

        try:
            claims = jwt.decode(
                token,
                key=self.secret,
                algorithms=list(self.allowed_algs),
                audience=self.audience,
                issuer=self.issuer,
                leeway=self.clock_skew_seconds,
                options={"require": ["exp", "iss", "aud", "sub"]},
            )
        except jwt.PyJWTError as exc:
            raise _unauthorized("Invalid token") from exc

        return claims
