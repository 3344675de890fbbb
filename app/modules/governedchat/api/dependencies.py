"""Request-scoped accessors for the services wired on app.state."""

import base64
import binascii
import json
import logging
from typing import Any, Optional

from fastapi import Request

from app.modules.governedchat.services.backends import ChatBackend
from app.modules.governedchat.services.orchestrator import ChatOrchestrator
from app.services.memory.history import SqlSessionHistoryStore
from core.config import Settings

logger = logging.getLogger(__name__)

CLIENT_PRINCIPAL_HEADER = "x-ms-client-principal"


def get_user_id(request: Request, body: Optional[Any] = None) -> Optional[str]:
    """
    Resolve the caller's user id: the platform auth principal header first,
    then ``context.userId`` in the body, then the ``userId`` query parameter.
    """
    user_id: Optional[str] = None

    principal = request.headers.get(CLIENT_PRINCIPAL_HEADER)
    if principal:
        try:
            infos = json.loads(base64.b64decode(principal).decode("ascii"))
            if isinstance(infos, dict):
                user_id = infos.get("userId")
        except (binascii.Error, ValueError) as e:
            logger.warning(f"Ignoring undecodable client principal header: {e}")

    if not user_id and body is not None:
        context = getattr(body, "context", None)
        user_id = getattr(context, "userId", None) if context is not None else None

    return user_id or request.query_params.get("userId") or None


def get_orchestrator(request: Request) -> ChatOrchestrator:
    return request.app.state.orchestrator


def get_history_store(request: Request) -> SqlSessionHistoryStore:
    return request.app.state.history_store


def get_backend(request: Request) -> ChatBackend:
    return request.app.state.backend


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings
