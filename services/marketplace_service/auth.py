from datetime import datetime, timedelta
from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from passlib.context import CryptContext
from errors import MarketplaceError, UNAUTHORIZED, FORBIDDEN
from models import UserRole
from schemas import Account
import hashlib
import os

SECRET_KEY = os.getenv("SECRET_KEY", "your-secret-key-change-in-production")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
http_bearer = HTTPBearer(auto_error=False)


def _prehash_password(password: str) -> str:
    """
    Pre-hash the raw password using SHA-256 before passing it to bcrypt.
    This prevents bcrypt from failing on extremely long passwords.
    """
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def hash_password(password: str) -> str:
    return pwd_context.hash(_prehash_password(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(_prehash_password(plain_password), hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if "sub" in to_encode:
        to_encode["sub"] = str(to_encode["sub"])
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> dict:
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise MarketplaceError(UNAUTHORIZED)


def account_from_token(token: str) -> Account:
    payload = verify_token(token)
    user_id = payload.get("sub")
    role = payload.get("role")
    if user_id is None or role is None:
        raise MarketplaceError(UNAUTHORIZED)
    try:
        return Account(id=int(user_id), role=UserRole(role))
    except ValueError:
        raise MarketplaceError(UNAUTHORIZED)


def get_current_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> Account:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise MarketplaceError(UNAUTHORIZED)
    return account_from_token(credentials.credentials)


def require_role(*roles: UserRole):
    """Dependency factory gating an endpoint on the caller's role."""

    def checker(account: Account = Depends(get_current_account)) -> Account:
        if account.role not in roles:
            raise MarketplaceError(FORBIDDEN)
        return account

    return checker
