"""
Device API endpoints.

Registration, listing and checksum heartbeats.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from carddex.db.database import get_session
from carddex.models.records import DeviceType
from carddex.services.device_registry import list_devices, record_heartbeat, register_device

router = APIRouter(prefix="/profiles", tags=["devices"])


class DeviceRegistrationRequest(BaseModel):
    device_id: str = Field(..., min_length=1, max_length=200)
    device_type: DeviceType = DeviceType.UNKNOWN
    device_name: str | None = Field(default=None, max_length=200)
    app_version: str | None = Field(default=None, max_length=50)


class DeviceRegistrationResponse(BaseModel):
    profile_id: str
    device_id: str
    device_type: str
    registered_at: int


class DeviceResponse(BaseModel):
    device_id: str
    device_type: str
    device_name: str | None = None
    app_version: str | None = None
    first_seen: int
    last_seen: int
    registrations: int


class DeviceListResponse(BaseModel):
    profile_id: str
    devices: list[DeviceResponse] = Field(default_factory=list)


class HeartbeatRequest(BaseModel):
    client_checksum: int | None = Field(
        default=None,
        description="Checksum computed on the device; omitted means nothing to compare",
    )


class HeartbeatResponse(BaseModel):
    device_id: str
    server_checksum: int
    in_sync: bool
    timestamp: int


@router.post("/{profile_id}/devices", response_model=DeviceRegistrationResponse)
async def post_device(
    profile_id: str,
    request: DeviceRegistrationRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DeviceRegistrationResponse:
    """
    Register a device for a profile.

    Every call appends a registration, including repeats of the same
    device id.
    """
    registration = await register_device(
        session,
        profile_id,
        request.device_id,
        request.device_type,
        request.device_name,
        request.app_version,
    )
    return DeviceRegistrationResponse(
        profile_id=profile_id,
        device_id=registration.device_id,
        device_type=registration.device_type,
        registered_at=registration.registered_at,
    )


@router.get("/{profile_id}/devices", response_model=DeviceListResponse)
async def get_devices(
    profile_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DeviceListResponse:
    devices = await list_devices(session, profile_id)
    return DeviceListResponse(
        profile_id=profile_id,
        devices=[
            DeviceResponse(
                device_id=d.device_id,
                device_type=d.device_type,
                device_name=d.device_name,
                app_version=d.app_version,
                first_seen=d.first_seen,
                last_seen=d.last_seen,
                registrations=d.registrations,
            )
            for d in devices
        ],
    )


@router.post("/{profile_id}/devices/{device_id}/heartbeat", response_model=HeartbeatResponse)
async def post_heartbeat(
    profile_id: str,
    device_id: str,
    request: HeartbeatRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> HeartbeatResponse:
    """Compare the device's checksum with the authoritative one. Writes nothing."""
    result = await record_heartbeat(session, profile_id, device_id, request.client_checksum)
    return HeartbeatResponse(
        device_id=result.device_id,
        server_checksum=result.server_checksum,
        in_sync=result.in_sync,
        timestamp=result.timestamp,
    )
