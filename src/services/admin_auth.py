# src/services/admin_auth.py
"""
Admin login for the dashboard.

Direct mode checks admin_users through the verify_password RPC and signs the
session token locally. Proxy mode posts the credentials to the admin-auth
function, which does the same check server side and returns the token.
"""

from __future__ import annotations

import json
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, MutableMapping, Optional

import jwt
import requests

from services.database import DatabaseClient, DatabaseError, DirectDatabase
from services.log import get_logger
from services.schemas import AdminUser
from services.settings import ADMIN_AUTH_ENDPOINT, ApiConfig

logger = get_logger(__name__)

ADMIN_TABLE = "admin_users"
AUTH_KEY = "admin_auth"
TOKEN_KEY = "admin_jwt_token"
SESSION_HOURS = 24
JWT_ALGORITHM = "HS256"

INVALID_CREDENTIALS = "Invalid email or password"


class AuthError(Exception):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def issue_token(user: AdminUser, secret: str, now: Optional[datetime] = None) -> str:
    now = now or _utcnow()
    payload = {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name or user.email,
        "role": user.role,
        "iat": now,
        "exp": now + timedelta(hours=SESSION_HOURS),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str, secret: Optional[str] = None) -> Dict[str, Any]:
    """Expired or malformed tokens raise jwt.PyJWTError. Without a secret only exp is checked."""
    if secret:
        return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
    return jwt.decode(token, options={"verify_signature": False, "verify_exp": True})


def authenticate(db: DirectDatabase, email: str, password: str) -> AdminUser:
    """
    Look the account up by email and check the password with the database's
    verify_password function. Used by the dashboard in direct mode and by the
    admin-auth endpoint.
    """
    rows = db.select(ADMIN_TABLE, "id, email, full_name, role, is_active, password_hash", {"email": email})
    if not rows:
        raise AuthError(INVALID_CREDENTIALS)
    row = rows[0]

    try:
        valid = db.rpc("verify_password", {"input_password": password, "stored_hash": row.get("password_hash")})
    except DatabaseError as e:
        logger.error("Password verification failed: %s", e)
        raise AuthError(INVALID_CREDENTIALS) from e
    if not valid:
        raise AuthError(INVALID_CREDENTIALS)
    if not row.get("is_active"):
        raise AuthError("Account is inactive")

    last_login = _utcnow().isoformat()
    try:
        db.update(ADMIN_TABLE, {"last_login": last_login}, {"id": row["id"]})
    except DatabaseError as e:
        logger.warning("Could not update last_login for %s: %s", email, e)

    fields = {k: v for k, v in row.items() if k in AdminUser.model_fields}
    fields["last_login"] = last_login
    return AdminUser(**fields)


class AdminAuth:
    def __init__(
        self,
        db: Optional[DatabaseClient],
        store: MutableMapping[str, Any],
        api_config: ApiConfig,
        secret: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.db = db
        self.store = store
        self.api_config = api_config
        self.secret = secret
        self.session = session or requests.Session()
        self.current_user: Optional[AdminUser] = None

    @property
    def use_proxy(self) -> bool:
        return self.api_config.use_proxy

    @property
    def is_authenticated(self) -> bool:
        return self.current_user is not None

    # ---------- login ----------
    def login(self, email: str, password: str) -> AdminUser:
        logger.info("Attempting admin login for: %s", email)
        if self.use_proxy:
            user, token = self._proxy_login(email, password)
        else:
            if not isinstance(self.db, DirectDatabase):
                raise AuthError("Database not available")
            user = authenticate(self.db, email, password)
            token = issue_token(user, self.secret) if self.secret else None

        self.current_user = user
        if token:
            self.store[TOKEN_KEY] = token
        self.store[AUTH_KEY] = json.dumps({
            **user.model_dump(),
            "loginTime": _utcnow().isoformat(),
            "sessionId": secrets.token_hex(13),
        })
        return user

    def _proxy_login(self, email: str, password: str):
        url = self.api_config.endpoint_url(ADMIN_AUTH_ENDPOINT)
        try:
            resp = self.session.post(url, json={"email": email, "password": password, "action": "login"}, timeout=15)
        except requests.RequestException as e:
            logger.warning("Admin auth endpoint failed: %s", e)
            raise AuthError("Admin authentication endpoint is not available") from e

        try:
            body = resp.json()
        except ValueError as e:
            raise AuthError("Invalid JSON response from auth endpoint") from e
        if not isinstance(body, dict):
            raise AuthError("Invalid response from auth endpoint")

        if resp.status_code in (401, 403) or not body.get("success"):
            raise AuthError(body.get("error") or INVALID_CREDENTIALS)
        if not resp.ok:
            raise AuthError(f"HTTP {resp.status_code}: Admin auth endpoint not available")
        return AdminUser(**body["user"]), body.get("token")

    # ---------- session ----------
    def check_existing_session(self) -> bool:
        token = self.store.get(TOKEN_KEY)
        if token:
            try:
                payload = decode_token(token, self.secret)
                self.current_user = AdminUser(
                    id=payload["id"],
                    email=payload["email"],
                    full_name=payload.get("full_name") or payload["email"],
                    role=payload.get("role") or "admin",
                )
                return True
            except (jwt.PyJWTError, KeyError) as e:
                logger.warning("Invalid JWT token: %s", e)

        raw = self.store.get(AUTH_KEY)
        if raw:
            try:
                data = json.loads(raw)
            except ValueError:
                data = None
            if self.validate_session(data):
                self.current_user = AdminUser(**{k: data[k] for k in AdminUser.model_fields if k in data})
                return True
        return False

    def validate_session(self, data: Optional[Dict[str, Any]]) -> bool:
        if not data or not data.get("id"):
            return False
        try:
            login_time = datetime.fromisoformat(data["loginTime"])
        except (KeyError, TypeError, ValueError):
            self.logout()
            return False
        if login_time.tzinfo is None:
            login_time = login_time.replace(tzinfo=timezone.utc)
        if _utcnow() - login_time > timedelta(hours=SESSION_HOURS):
            self.logout()
            return False

        if self.db is None:
            return False
        try:
            rows = self.db.authorized(self.auth_headers()).select(ADMIN_TABLE, "is_active", {"id": data["id"]})
        except DatabaseError as e:
            logger.error("Session validation error: %s", e)
            return False
        if not rows or not rows[0].get("is_active"):
            self.logout()
            return False
        return True

    def logout(self) -> None:
        self.current_user = None
        self.store.pop(AUTH_KEY, None)
        self.store.pop(TOKEN_KEY, None)

    def auth_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self.store.get(TOKEN_KEY)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers
