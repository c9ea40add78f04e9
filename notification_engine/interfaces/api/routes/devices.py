"""Endpoints for registering push devices of the authenticated user."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from notification_engine.domain.entities import User
from notification_engine.interfaces.api.dependencies import get_current_active_user, get_runtime
from notification_engine.interfaces.api.schemas import DeviceRead, DeviceSubscribe
from notification_engine.runtime import NotificationRuntime

router = APIRouter(prefix="/devices", tags=["devices"])


@router.post("/", response_model=DeviceRead, status_code=status.HTTP_201_CREATED)
def subscribe_device(
    device_in: DeviceSubscribe,
    runtime: NotificationRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_active_user),
) -> DeviceRead:
    try:
        registration = runtime.device_registry.subscribe(
            current_user.id, device_in.token, device_in.platform
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return DeviceRead(token=registration.token, platform=registration.platform)


@router.get("/", response_model=list[DeviceRead])
def list_devices(
    runtime: NotificationRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_active_user),
) -> list[DeviceRead]:
    return [
        DeviceRead(token=device.token, platform=device.platform)
        for device in runtime.device_registry.devices_for(current_user.id)
    ]


@router.delete("/{token}", status_code=status.HTTP_204_NO_CONTENT)
def unsubscribe_device(
    token: str,
    runtime: NotificationRuntime = Depends(get_runtime),
    current_user: User = Depends(get_current_active_user),
) -> Response:
    if not runtime.device_registry.unsubscribe(current_user.id, token):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]
