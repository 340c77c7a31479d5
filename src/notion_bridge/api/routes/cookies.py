"""Admin routes for managing the credential pool."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status

from ...schemas import AddCookiesRequest, SetThreadRequest, ToggleRequest
from ...sessions.credentials import split_credential_blob

logger = logging.getLogger(__name__)

router = APIRouter()


def _not_found(user_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"No credential found for user {user_id}",
    )


@router.get("/status")
async def cookie_status(request: Request) -> dict[str, Any]:
    """List credentials with their health flags; secrets are redacted."""
    pool = request.app.state.pool
    return {
        "total": len(pool),
        "valid": await pool.eligible_count(),
        "cookies": await pool.status(),
    }


@router.post("/add")
async def add_cookies(body: AddCookiesRequest, request: Request) -> dict[str, Any]:
    """Add one or more credentials (``|``-separated), optionally bound to a thread."""
    pool = request.app.state.pool
    settings = request.app.state.settings

    added = 0
    updated = 0
    errors: list[str] = []
    for raw in split_credential_blob(body.cookies, settings.cookie_delimiter):
        result = await pool.add_credential(raw, body.thread_id)
        if not result.success:
            errors.append(result.reason)
        elif result.updated:
            updated += 1
        else:
            added += 1

    if not added and not updated:
        logger.warning("Credential add rejected: %s", errors)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "No credential could be added", "errors": errors},
        )

    response: dict[str, Any] = {"success": True, "added": added, "updated": updated, "failed": len(errors)}
    if errors:
        response["errors"] = errors
    return response


@router.put("/thread")
async def set_thread(body: SetThreadRequest, request: Request) -> dict[str, Any]:
    """Bind a credential to a Notion thread, or clear the binding with a null threadId."""
    if not await request.app.state.pool.set_context(body.user_id, body.thread_id):
        raise _not_found(body.user_id)
    return {"success": True, "userId": body.user_id, "threadId": body.thread_id}


@router.put("/{user_id}/toggle")
async def toggle_cookie(user_id: str, body: ToggleRequest, request: Request) -> dict[str, Any]:
    if not await request.app.state.pool.set_enabled(user_id, body.enabled):
        raise _not_found(user_id)
    return {"success": True, "enabled": body.enabled}


@router.post("/{user_id}/revalidate")
async def revalidate_cookie(user_id: str, request: Request) -> dict[str, Any]:
    """Put a credential that Notion rejected back into rotation."""
    if not await request.app.state.pool.revalidate(user_id):
        raise _not_found(user_id)
    return {"success": True}


@router.delete("/{user_id}")
async def delete_cookie(user_id: str, request: Request) -> dict[str, Any]:
    if not await request.app.state.pool.remove(user_id):
        raise _not_found(user_id)
    return {"success": True}
