"""
Admin authentication: password checks, signed session tokens and the
request guard protecting mutation routes.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol

from appwrite.exception import AppwriteException
from fastapi import Request
from jose import JWTError, jwt
from passlib.context import CryptContext

from portfolio.config import Settings
from portfolio.db import AdminRecord, ContentStore
from portfolio.errors import Forbidden, Unauthenticated
from portfolio.schemas import AdminIdentity

logger = logging.getLogger(__name__)

# pbkdf2_sha256 keeps hashing pure-python, no bcrypt backend needed
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # Unrecognised hash format
        return False


def create_access_token(admin: AdminRecord, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(admin.id),
        "id": admin.id,
        "username": admin.username,
        "iat": now,
        "exp": now + timedelta(seconds=settings.token_ttl_seconds),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> dict:
    try:
        return jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except JWTError as exc:
        raise Unauthenticated("Invalid token") from exc


def ensure_bootstrap_admin(store: ContentStore, settings: Settings) -> Optional[AdminRecord]:
    """Create the configured admin when the allow-list is empty."""
    if store.count_admins() > 0:
        return None
    admin = store.create_admin(
        settings.admin_username, hash_password(settings.admin_password)
    )
    logger.info("Default admin account %s created.", admin.username)
    return admin


class Authenticator(Protocol):
    """Turns login credentials into an admin record or raises."""

    def authenticate(self, username: str, password: str) -> AdminRecord:
        ...


class LocalAuthenticator:
    """Checks passwords against hashes kept in the content store."""

    def __init__(self, store: ContentStore):
        self.store = store

    def authenticate(self, username: str, password: str) -> AdminRecord:
        admin = self.store.get_admin(username)
        if admin is None or not verify_password(password, admin.password_hash):
            logger.warning("Failed login for %s", username)
            raise Unauthenticated("Invalid credentials")
        return admin


class AppwriteAuthenticator:
    """
    Delegates the password check to Appwrite accounts, then consults the
    admins collection. The first identity to log in on an empty allow-list
    is enrolled; with ``auto_enroll`` every authenticated identity is.
    """

    def __init__(
        self,
        account_factory: Callable[[], object],
        store: ContentStore,
        *,
        auto_enroll: bool = False,
    ):
        self.account_factory = account_factory
        self.store = store
        self.auto_enroll = auto_enroll

    def authenticate(self, username: str, password: str) -> AdminRecord:
        account = self.account_factory()
        try:
            account.create_email_password_session(email=username, password=password)
        except AppwriteException as exc:
            logger.warning("Appwrite rejected login for %s: %s", username, exc.message)
            raise Unauthenticated("Invalid credentials") from exc

        admin = self.store.get_admin(username)
        if admin is not None:
            return admin
        if self.auto_enroll or self.store.count_admins() == 0:
            admin = self.store.create_admin(username, password_hash="")
            logger.info("Enrolled %s as admin on first login", username)
            return admin
        logger.warning("%s authenticated but is not an admin", username)
        raise Forbidden("Not an administrator")


def _credential_from(request: Request, settings: Settings) -> Optional[str]:
    token = request.cookies.get(settings.cookie_name)
    if token:
        return token
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


def require_admin(request: Request) -> AdminIdentity:
    """
    Resolve the caller to an admin identity.

    Missing or unverifiable credentials raise ``Unauthenticated`` (401); a
    valid token whose username is not on the admin allow-list raises
    ``Forbidden`` (403).
    """
    services = request.app.state.services
    settings, store = services.settings, services.store
    token = _credential_from(request, settings)
    if not token:
        raise Unauthenticated("Access denied")
    claims = decode_access_token(token, settings)
    username = claims.get("username")
    admin = store.get_admin(username) if username else None
    if admin is None:
        raise Forbidden("Not an administrator")
    return AdminIdentity(id=admin.id, username=admin.username)
