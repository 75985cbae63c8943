"""
Token Authority.

Issues and verifies short-lived HMAC-signed JWTs for the single configured
principal. Stateless: nothing is stored server-side, a token is valid until
its expiry and cannot be revoked. The short lifetime is the only mitigation,
clients re-authenticate often.

Claims:
- user: subject (username)
- authorized: always true
- exp: issue time + lifetime, integer epoch seconds
"""

import time
from typing import Any, Callable, Dict, Mapping, Optional

import jwt

from sdk.logging import getLogger
from .config import ConfigurationError, DEFAULT_TOKEN_LIFETIME_SECONDS

TOKEN_HEADER = 'Token'
SIGNING_ALGORITHM = 'HS512'
ACCEPTED_ALGORITHMS = ('HS256', 'HS384', 'HS512')


class AuthenticationError(Exception):
    """Bad credentials or unusable token"""
    pass


class MissingToken(AuthenticationError):
    pass


class UnsupportedAlgorithm(AuthenticationError):
    pass


class MalformedToken(AuthenticationError):
    pass


class Expired(AuthenticationError):
    pass


def extractToken(headers: Mapping[str, str]) -> Optional[str]:
    """Token from the `Token` header, falling back to `Authorization: Bearer`"""
    token = headers.get(TOKEN_HEADER)
    if token:
        return token.strip()

    authorization = headers.get('Authorization', '')
    scheme, _, value = authorization.partition(' ')
    if scheme.lower() == 'bearer' and value.strip():
        return value.strip()
    return None


class TokenAuthority:
    """Issue/verify pair for bearer tokens"""

    def __init__(self, secret: str, lifetimeSeconds: int = DEFAULT_TOKEN_LIFETIME_SECONDS,
                 clock: Callable[[], float] = time.time):
        self.secret = secret
        self.lifetimeSeconds = lifetimeSeconds
        self.clock = clock
        self.log = getLogger()

    def issue(self, subject: str) -> str:
        """
        Sign a token for subject.

        Raises:
            ConfigurationError: No signing secret configured
        """
        if not self.secret:
            self.log.critical("Token signing secret is not configured")
            raise ConfigurationError("Token signing secret is not configured")

        claims = {
            'user': subject,
            'authorized': True,
            'exp': int(self.clock()) + self.lifetimeSeconds
        }
        token = jwt.encode(claims, self.secret, algorithm=SIGNING_ALGORITHM)
        self.log.info("Issued token", user=subject, expiresAt=claims['exp'])
        return token

    def verify(self, token: Optional[str]) -> Dict[str, Any]:
        """
        Validate token and return its claims.

        Raises:
            MissingToken: token absent or empty
            UnsupportedAlgorithm: header declares a non-HMAC algorithm
            MalformedToken: unparseable, bad signature, or claims missing
            Expired: current time at or past the embedded expiry
        """
        if not token:
            raise MissingToken("No token presented")

        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            self.log.warning(f"Unparseable token: {e}")
            raise MalformedToken("Token could not be parsed") from e

        algorithm = header.get('alg')
        if algorithm not in ACCEPTED_ALGORITHMS:
            self.log.warning("Rejected token signing method", alg=algorithm)
            raise UnsupportedAlgorithm(f"Unexpected signing method: {algorithm}")

        try:
            # Expiry is checked below against the injectable clock
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=list(ACCEPTED_ALGORITHMS),
                options={'verify_exp': False, 'require': ['exp']}
            )
        except jwt.InvalidTokenError as e:
            self.log.warning(f"Token verification failed: {e}")
            raise MalformedToken("Token signature or claims invalid") from e

        expiry = claims.get('exp')
        if not isinstance(expiry, (int, float)) or isinstance(expiry, bool):
            raise MalformedToken("Token expiry is not a number")
        if claims.get('authorized') is not True or not isinstance(claims.get('user'), str):
            self.log.warning("Token missing authorization claims")
            raise MalformedToken("Token is not authorized")

        if self.clock() >= expiry:
            self.log.info("Token expired", user=claims['user'], expiredAt=expiry)
            raise Expired("Token has expired")

        return claims
