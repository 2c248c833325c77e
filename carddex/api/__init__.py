from carddex.api.backup import router as backup_router
from carddex.api.devices import router as devices_router
from carddex.api.health import router as health_router
from carddex.api.integrity import router as integrity_router

__all__ = [
    "backup_router",
    "devices_router",
    "health_router",
    "integrity_router",
]
