"""
Siteadmin - Authentication Module
=================================
Provides password-based authentication for the admin API.

Security model:
- Single admin password (no user accounts needed), taken from ADMIN_PASSWORD
- The password may be configured as plaintext or as a bcrypt hash ("$2...")
- JWT tokens issued on successful login, valid for 24 hours
- Tokens are verified statelessly: nothing is stored server-side, so
  logging out only discards the token on the client
- All API routes except /login and /health require a valid token

Failure modes of the route guard:
    No "Authorization: Bearer ..." header  -> 401
    Token present but invalid or expired   -> 403
"""

import logging
import bcrypt
from datetime import datetime, timedelta, timezone
from jose import jwt, JWTError
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials


logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
JWT_EXPIRATION_HOURS = 24
TOKEN_LIFETIME_SECONDS = JWT_EXPIRATION_HOURS * 3600

ADMIN_ROLE = "admin"

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72

# Security scheme for FastAPI dependency injection
security = HTTPBearer(auto_error=False)


class InvalidToken(Exception):
    """Raised when a token fails signature, format or expiry checks."""


class AuthManager:
    """
    Verifies the admin password and manages the JWT token lifecycle.

    Attributes:
        secret: Secret used to sign and verify tokens.
    """

    def __init__(self, password: str, secret: str):
        """
        Initialize the auth manager.

        Args:
            password: Configured admin password, plaintext or bcrypt hash.
            secret:   Token signing secret. Must not be empty.

        Raises:
            ValueError: If the password or secret is empty, or a plaintext
                        password is longer than MAX_PASSWORD_BYTES.
        """
        if not password:
            raise ValueError("Admin password must not be empty.")
        if not secret:
            raise ValueError("JWT secret must not be empty.")

        if password.startswith("$2"):
            self._password_hash = password.encode("utf-8")
        else:
            if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
                raise ValueError(
                    f"Admin password must be at most {MAX_PASSWORD_BYTES} bytes."
                )
            self._password_hash = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt())
        self.secret = secret

    def verify_password(self, password: str) -> bool:
        """Check a plaintext password against the configured one."""
        candidate = password.encode("utf-8")
        if len(candidate) > MAX_PASSWORD_BYTES:
            return False
        try:
            return bcrypt.checkpw(candidate, self._password_hash)
        except ValueError:
            # Configured hash is malformed
            logger.error("[AUTH] Configured ADMIN_PASSWORD hash is not a valid bcrypt hash")
            return False

    def issue(self, client: str = "", issued_at: datetime | None = None) -> str:
        """
        Create a signed admin token.

        Args:
            client:    Identifier of the requesting client (its address).
            issued_at: Issue time, defaults to now.

        Returns:
            The encoded JWT.
        """
        now = issued_at or datetime.now(timezone.utc)
        payload = {
            "sub": ADMIN_ROLE,
            "role": ADMIN_ROLE,
            "client": client,
            "iat": now,
            "exp": now + timedelta(hours=JWT_EXPIRATION_HOURS),
        }
        return jwt.encode(payload, self.secret, algorithm=JWT_ALGORITHM)

    def verify(self, token: str) -> dict:
        """
        Verify a token and return its claims.

        Raises:
            InvalidToken: On bad signature, malformed token, expired token
                          or missing role claim.
        """
        try:
            claims = jwt.decode(token, self.secret, algorithms=[JWT_ALGORITHM])
        except JWTError as e:
            raise InvalidToken(str(e)) from e
        if claims.get("role") != ADMIN_ROLE:
            raise InvalidToken("Token does not carry the admin role")
        return claims


def require_auth(auth_manager: AuthManager):
    """
    Create a FastAPI dependency that enforces authentication.

    Usage in routes:
        @router.get("/statistics", dependencies=[Depends(require_auth(auth_mgr))])
        async def get_statistics(): ...

    The dependency returns the verified token claims, so handlers that need
    them can declare it as a parameter instead.
    """
    async def _verify(
        credentials: HTTPAuthorizationCredentials | None = Depends(security),
    ) -> dict:
        if credentials is None or not credentials.credentials:
            raise HTTPException(
                status_code=401,
                detail="Authentication required",
                headers={"WWW-Authenticate": "Bearer"},
            )

        try:
            return auth_manager.verify(credentials.credentials)
        except InvalidToken:
            raise HTTPException(status_code=403, detail="Invalid or expired token")

    return _verify
