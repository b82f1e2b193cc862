"""FastAPI dependencies for API routes."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from listsync.core.config import ServerConfig
from listsync.server.database import Database
from listsync.server.models import Token
from listsync.server.sync import SyncOrchestrator

# Security scheme
security = HTTPBearer(auto_error=False)


def get_db(request: Request) -> Database:
    """Get database from app state."""
    db: Database = request.app.state.db
    return db


def get_config(request: Request) -> ServerConfig:
    """Get server configuration from app state."""
    config: ServerConfig = request.app.state.config
    return config


def get_orchestrator(
    db: Database = Depends(get_db),
    config: ServerConfig = Depends(get_config),
) -> SyncOrchestrator:
    """Create the orchestrator owning this request's sync."""
    return SyncOrchestrator(db, max_clock_skew=config.max_clock_skew)


def get_current_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Token:
    """Validate bearer token and return Token object."""
    db = get_db(request)
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    token = db.validate_token(credentials.credentials)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


def get_owner_id(token: Token = Depends(get_current_token)) -> int:
    """Account the authenticated request acts for."""
    return token.account_id
