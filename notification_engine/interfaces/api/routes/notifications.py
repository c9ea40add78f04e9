"""Endpoints and websocket handler for notifications."""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import (
    APIRouter,
    Depends,
    Query,
    Response,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from sqlalchemy.ext.asyncio import AsyncSession

from notification_engine.application.use_cases.notifications import (
    create_notification as create_notification_uc,
    create_template as create_template_uc,
    delete_notification as delete_notification_uc,
    get_notification_stats as get_notification_stats_uc,
    list_my_notifications as list_my_notifications_uc,
    list_templates as list_templates_uc,
    list_unread_notifications as list_unread_notifications_uc,
    mark_all_notifications_read as mark_all_notifications_read_uc,
    mark_notification_read as mark_notification_read_uc,
    send_bulk_notifications as send_bulk_notifications_uc,
    send_from_template as send_from_template_uc,
)
from notification_engine.application.use_cases.notifications.send_bulk import BulkSendResult
from notification_engine.domain.entities import User
from notification_engine.domain.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    NotificationValidationError,
)
from notification_engine.infrastructure.database import get_db
from notification_engine.infrastructure.notifications import (
    ConnectionHandle,
    serialize_notification,
)
from notification_engine.interfaces.api.dependencies import (
    get_current_active_user,
    get_runtime,
    require_admin,
)
from notification_engine.interfaces.api.routes_helpers import (
    notification_to_schema,
    template_to_schema,
    to_http_error,
)
from notification_engine.interfaces.api.schemas import (
    BroadcastRequest,
    BroadcastResponse,
    BulkFailureRead,
    BulkSendResultRead,
    MarkAllReadResponse,
    NotificationBulkCreate,
    NotificationCreate,
    NotificationRead,
    NotificationStatsRead,
    TemplateCreate,
    TemplateRead,
    TemplateSendRequest,
)
from notification_engine.runtime import NotificationRuntime

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _bulk_result_to_schema(result: BulkSendResult) -> BulkSendResultRead:
    return BulkSendResultRead(
        successful=[notification_to_schema(n) for n in result.successful],
        failed=[BulkFailureRead(id=f.id, error=f.error) for f in result.failed],
    )


@router.post("/", response_model=NotificationRead, status_code=status.HTTP_201_CREATED)
async def create_notification(
    notification_in: NotificationCreate,
    db: AsyncSession = Depends(get_db),
    runtime: NotificationRuntime = Depends(get_runtime),
    _: User = Depends(require_admin),
) -> NotificationRead:
    """Create a notification for a single recipient."""

    try:
        notification = await create_notification_uc(
            db,
            notification_in.model_dump(exclude_unset=True),
            queue=runtime.queue,
            gateway=runtime.gateway,
        )
    except NotificationValidationError as exc:
        raise to_http_error(exc) from exc
    return notification_to_schema(notification)


@router.post("/bulk", response_model=BulkSendResultRead, status_code=status.HTTP_201_CREATED)
async def send_bulk_notifications(
    bulk_in: NotificationBulkCreate,
    db: AsyncSession = Depends(get_db),
    runtime: NotificationRuntime = Depends(get_runtime),
    _: User = Depends(require_admin),
) -> BulkSendResultRead:
    """Send the same notification to up to 1000 recipients."""

    try:
        result = await send_bulk_notifications_uc(
            db,
            bulk_in.model_dump(exclude_unset=True),
            queue=runtime.queue,
            gateway=runtime.gateway,
        )
    except NotificationValidationError as exc:
        raise to_http_error(exc) from exc
    return _bulk_result_to_schema(result)


@router.post("/templates", response_model=TemplateRead, status_code=status.HTTP_201_CREATED)
async def create_template(
    template_in: TemplateCreate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
) -> TemplateRead:
    try:
        template = await create_template_uc(db, **template_in.model_dump())
    except NotificationValidationError as exc:
        raise to_http_error(exc) from exc
    return template_to_schema(template)


@router.get("/templates", response_model=list[TemplateRead])
async def list_templates(
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
) -> list[TemplateRead]:
    return [template_to_schema(template) for template in await list_templates_uc(db)]


@router.post(
    "/templates/{name}/send",
    response_model=BulkSendResultRead,
    status_code=status.HTTP_201_CREATED,
)
async def send_from_template(
    name: str,
    send_in: TemplateSendRequest,
    db: AsyncSession = Depends(get_db),
    runtime: NotificationRuntime = Depends(get_runtime),
    _: User = Depends(require_admin),
) -> BulkSendResultRead:
    """Render the named template and send it to the given recipients."""

    try:
        result = await send_from_template_uc(
            db,
            name,
            send_in.recipient_ids,
            send_in.variables,
            queue=runtime.queue,
            gateway=runtime.gateway,
            priority=send_in.priority,
        )
    except (NotFoundError, NotificationValidationError) as exc:
        raise to_http_error(exc) from exc
    return _bulk_result_to_schema(result)


@router.post("/broadcast", response_model=BroadcastResponse)
async def broadcast(
    broadcast_in: BroadcastRequest,
    runtime: NotificationRuntime = Depends(get_runtime),
    _: User = Depends(require_admin),
) -> BroadcastResponse:
    """Push an announcement to every connected user."""

    delivered = await runtime.gateway.broadcast_to_all(broadcast_in.model_dump())
    return BroadcastResponse(delivered=delivered)


@router.get("/my", response_model=list[NotificationRead])
async def list_my_notifications(
    limit: int = Query(20),
    offset: int = Query(0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> list[NotificationRead]:
    """Return the authenticated user's notifications, newest first."""

    try:
        notifications = await list_my_notifications_uc(
            db, current_user.id, limit=limit, offset=offset
        )
    except NotificationValidationError as exc:
        raise to_http_error(exc) from exc
    return [notification_to_schema(n) for n in notifications]


@router.get("/my/unread", response_model=list[NotificationRead])
async def list_unread_notifications(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> list[NotificationRead]:
    notifications = await list_unread_notifications_uc(db, current_user.id)
    return [notification_to_schema(n) for n in notifications]


@router.get("/my/stats", response_model=NotificationStatsRead)
async def get_my_stats(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> NotificationStatsRead:
    stats = await get_notification_stats_uc(db, current_user.id)
    return NotificationStatsRead(
        total=stats.total, unread=stats.unread, by_channel=stats.by_channel
    )


@router.patch("/my/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    db: AsyncSession = Depends(get_db),
    runtime: NotificationRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_active_user),
) -> MarkAllReadResponse:
    updated = await mark_all_notifications_read_uc(
        db, current_user.id, gateway=runtime.gateway
    )
    return MarkAllReadResponse(updated=updated)


@router.patch("/{notification_id}/read", response_model=NotificationRead)
async def mark_read(
    notification_id: str,
    db: AsyncSession = Depends(get_db),
    runtime: NotificationRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_active_user),
) -> NotificationRead:
    try:
        notification = await mark_notification_read_uc(
            db, notification_id, current_user.id, gateway=runtime.gateway
        )
    except (NotFoundError, InvalidTransitionError) as exc:
        raise to_http_error(exc) from exc
    return notification_to_schema(notification)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: str,
    db: AsyncSession = Depends(get_db),
    runtime: NotificationRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_active_user),
) -> Response:
    try:
        await delete_notification_uc(
            db, notification_id, current_user.id, gateway=runtime.gateway
        )
    except NotFoundError as exc:
        raise to_http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _extract_token(websocket: WebSocket) -> str | None:
    token = websocket.query_params.get("token")
    if token:
        return token
    authorization = websocket.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


async def _handle_action(
    runtime: NotificationRuntime,
    handle: ConnectionHandle,
    message: dict[str, Any],
) -> None:
    manager = runtime.connections
    action = message.get("type")
    data = message.get("data") or {}
    if not isinstance(data, dict):
        data = {}

    if action == "ping":
        await manager.emit(handle, "pong", data)
        return

    async with runtime.session_factory() as session:
        if action == "mark_as_read":
            notification = await mark_notification_read_uc(
                session,
                str(data.get("notification_id", "")),
                handle.user_id,
                gateway=runtime.gateway,
            )
            await manager.emit(
                handle, "notification_marked_read", serialize_notification(notification)
            )
        elif action == "mark_all_read":
            updated = await mark_all_notifications_read_uc(
                session, handle.user_id, gateway=runtime.gateway
            )
            await manager.emit(handle, "all_notifications_marked_read", {"updated": updated})
        elif action == "get_notifications":
            notifications = await list_my_notifications_uc(
                session,
                handle.user_id,
                limit=int(data.get("limit", 20)),
                offset=int(data.get("offset", 0)),
            )
            await manager.emit(
                handle, "notifications", [serialize_notification(n) for n in notifications]
            )
        else:
            await manager.emit(handle, "error", {"message": f"Unknown action '{action}'"})


@router.websocket("/ws")
async def notifications_websocket(websocket: WebSocket) -> None:
    """Websocket endpoint that streams notifications to the authenticated user."""

    runtime: NotificationRuntime = websocket.app.state.runtime
    handle = await runtime.gateway.connect(websocket, _extract_token(websocket))
    if handle is None:
        return

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                message = None
            if not isinstance(message, dict):
                await runtime.connections.emit(
                    handle, "error", {"message": "Messages must be JSON objects"}
                )
                continue
            try:
                await _handle_action(runtime, handle, message)
            except (NotFoundError, TypeError, ValueError) as exc:
                await runtime.connections.emit(handle, "error", {"message": str(exc)})
    except WebSocketDisconnect:
        logger.debug("Live connection %s closed by client", handle.id)
    finally:
        runtime.gateway.disconnect(handle)


__all__ = ["router"]
