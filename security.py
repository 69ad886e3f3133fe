from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError
from passlib.context import CryptContext

from config import Settings

bearer_scheme = HTTPBearer(auto_error=False)


def unauthorized(detail: str = "Unauthorized") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


class CredentialService:
    """Password hashing and bearer tokens, keyed by the configured secret."""

    def __init__(self, settings: Settings):
        self.secret_key = settings.jwt_secret
        self.algorithm = settings.jwt_algorithm
        self.expires = timedelta(days=settings.access_token_expire_days)
        self.pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=settings.bcrypt_rounds,
        )

    def hash_password(self, password: str) -> str:
        return self.pwd_context.hash(password)

    def verify_password(self, plain: str, hashed: str) -> bool:
        return self.pwd_context.verify(plain, hashed)

    def create_access_token(self, user_id: int, expires: Optional[timedelta] = None) -> str:
        expire = datetime.now(timezone.utc) + (expires if expires is not None else self.expires)
        to_encode = {"sub": str(user_id), "exp": expire}
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def decode_access_token(self, token: str) -> int:
        """Return the user id carried by `token`, or raise 401."""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            raise unauthorized()

        try:
            return int(payload.get("sub"))
        except (TypeError, ValueError):
            raise unauthorized()


# ---------- Dependencies ----------
def get_credentials(request: Request) -> CredentialService:
    return request.app.state.credentials


def get_current_user_id(
    bearer: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    credentials: CredentialService = Depends(get_credentials),
) -> int:
    if bearer is None or bearer.scheme.lower() != "bearer" or not bearer.credentials:
        raise unauthorized()
    return credentials.decode_access_token(bearer.credentials)
