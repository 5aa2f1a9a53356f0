# functions/api.py
"""
Same-origin serverless proxy. Holds the Gemini key, the Supabase service key
and the JWT secret so the browser-facing pages never do.
"""

from __future__ import annotations

import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import jwt
from pydantic import BaseModel, Field

from services.admin_auth import AuthError, authenticate, decode_token, issue_token
from services.api_client import ChatbotError, call_gemini
from services.database import OPERATIONS, DatabaseError, DirectDatabase
from services.log import get_logger
from services.settings import (
    ADMIN_AUTH_ENDPOINT,
    CHATBOT_ENDPOINT,
    DATABASE_ENDPOINT,
    get_admin_jwt_secret,
    get_gemini_api_key,
)
from services.supabase_utils import get_service_client

logger = get_logger(__name__)

app = FastAPI(title="Portfolio Functions")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",")],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# table -> operations the public site may run
TABLE_RULES = {
    "page_analytics": {"insert", "select"},
    "chatbot_analytics": {"insert", "select"},
    "feedback_submissions": {"insert", "select"},
    "admin_users": {"select", "update"},
}

# reads of visitor data and any admin_users access need a dashboard token
ADMIN_ONLY = {
    ("page_analytics", "select"),
    ("chatbot_analytics", "select"),
    ("admin_users", "select"),
    ("admin_users", "update"),
}

SAFE_ADMIN_COLUMNS = {"id", "email", "full_name", "role", "is_active", "last_login"}
ADMIN_UPDATABLE = {"last_login"}
RANGE_COLUMNS = {"timestamp", "created_at"}


class ChatRequest(BaseModel):
    message: str = ""
    conversationHistory: List[Dict[str, Any]] = Field(default_factory=list)


class DatabaseRequest(BaseModel):
    operation: str
    table: str
    data: Optional[Dict[str, Any]] = None
    filters: Dict[str, Any] = Field(default_factory=dict)
    select: str = "*"
    order: Optional[str] = None
    desc: bool = False
    limit: Optional[int] = Field(default=None, ge=1, le=1000)
    since: Optional[str] = None
    until: Optional[str] = None
    range_column: str = "timestamp"


class AdminAuthRequest(BaseModel):
    email: str
    password: str
    action: str = "login"


def get_db() -> DirectDatabase:
    try:
        return DirectDatabase(get_service_client())
    except RuntimeError as e:
        logger.error("Supabase not configured: %s", e)
        raise HTTPException(status_code=500, detail="Database not configured")


def get_gemini_key() -> Optional[str]:
    return get_gemini_api_key(required=False)


def get_jwt_secret() -> Optional[str]:
    return get_admin_jwt_secret(required=False)


def _columns(select: str) -> set:
    return {c.strip() for c in (select or "*").split(",") if c.strip()}


def check_allowed(req: DatabaseRequest) -> None:
    if req.operation not in OPERATIONS:
        raise HTTPException(status_code=400, detail=f"Unsupported operation: {req.operation}")
    allowed = TABLE_RULES.get(req.table)
    if allowed is None or req.operation not in allowed:
        raise HTTPException(status_code=403, detail=f"{req.operation} on {req.table} is not allowed")
    if req.operation == "insert" and not req.data:
        raise HTTPException(status_code=400, detail="Insert requires data")
    if (req.since or req.until) and req.range_column not in RANGE_COLUMNS:
        raise HTTPException(status_code=403, detail=f"Range on {req.range_column} is not allowed")

    if req.table == "admin_users":
        if not req.filters or not set(req.filters) <= SAFE_ADMIN_COLUMNS:
            raise HTTPException(status_code=403, detail="Filter required on readable columns")
        if req.operation == "select" and not _columns(req.select) <= SAFE_ADMIN_COLUMNS:
            raise HTTPException(status_code=403, detail="Column not readable")
        if req.operation == "update" and not set((req.data or {}).keys()) <= ADMIN_UPDATABLE:
            raise HTTPException(status_code=403, detail="Column not writable")
        if req.since or req.until or (req.order and req.order not in SAFE_ADMIN_COLUMNS):
            raise HTTPException(status_code=403, detail="Column not readable")


def require_admin(authorization: Optional[str], secret: Optional[str]) -> Dict[str, Any]:
    """Payload of a valid dashboard token from the Authorization header, else 401."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Admin token required")
    if not secret:
        raise HTTPException(status_code=500, detail="JWT secret not configured")
    try:
        return decode_token(token, secret)
    except jwt.PyJWTError as e:
        logger.warning("Rejected admin token: %s", e)
        raise HTTPException(status_code=401, detail="Invalid or expired admin token")


def _safe_rows(table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if table != "admin_users":
        return rows
    return [{k: v for k, v in row.items() if k in SAFE_ADMIN_COLUMNS} for row in rows]


@app.get("/health")
def root_health():
    return {"ok": True, "service": "portfolio-functions", "time": datetime.utcnow().isoformat() + "Z"}


@app.post(CHATBOT_ENDPOINT)
def chatbot(req: ChatRequest, api_key: Optional[str] = Depends(get_gemini_key)):
    if not req.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")
    if not api_key:
        raise HTTPException(status_code=500, detail="Gemini API key not configured")
    try:
        return call_gemini(api_key, req.message)
    except ChatbotError as e:
        logger.error("Gemini call failed: %s", e)
        raise HTTPException(status_code=e.status or 502, detail=str(e))
    except Exception as e:
        logger.exception("Gemini call failed")
        raise HTTPException(status_code=502, detail=f"Upstream error: {e}")


@app.post(DATABASE_ENDPOINT)
def database(
    req: DatabaseRequest,
    db: DirectDatabase = Depends(get_db),
    secret: Optional[str] = Depends(get_jwt_secret),
    authorization: Optional[str] = Header(default=None),
):
    check_allowed(req)
    if (req.table, req.operation) in ADMIN_ONLY:
        require_admin(authorization, secret)
    try:
        rows = db.execute(
            req.operation,
            req.table,
            data=req.data,
            filters=req.filters,
            select=req.select,
            order=req.order,
            desc=req.desc,
            limit=req.limit,
            since=req.since,
            until=req.until,
            range_column=req.range_column,
        )
        return _safe_rows(req.table, rows)
    except DatabaseError as e:
        logger.error("Database proxy error: %s", e)
        raise HTTPException(status_code=500, detail=str(e))


@app.post(ADMIN_AUTH_ENDPOINT)
def admin_auth(
    req: AdminAuthRequest,
    db: DirectDatabase = Depends(get_db),
    secret: Optional[str] = Depends(get_jwt_secret),
):
    if req.action != "login":
        raise HTTPException(status_code=400, detail=f"Unsupported action: {req.action}")
    if not secret:
        raise HTTPException(status_code=500, detail="JWT secret not configured")
    try:
        user = authenticate(db, req.email, req.password)
    except AuthError as e:
        return JSONResponse(status_code=401, content={"success": False, "error": str(e)})
    except DatabaseError as e:
        logger.error("Admin lookup failed: %s", e)
        raise HTTPException(status_code=500, detail="Authentication unavailable")
    logger.info("Admin login: %s", user.email)
    return {"success": True, "token": issue_token(user, secret), "user": user.model_dump()}
