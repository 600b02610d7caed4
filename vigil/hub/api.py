"""FastAPI routes for the Vigil REST API."""

import asyncio
import logging
import sys
import time
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request, Security
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel

from vigil.config import VigilConfig
from vigil.exceptions import (
    DuplicateUsernameError,
    PersistenceError,
    SensorNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from vigil.hub.core import PresenceHub
from vigil.schemas import validate_dashboard_payload
from vigil.shared.models import User

logger = logging.getLogger(__name__)

_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


# --- Pydantic request models ---
class DetectionPayload(BaseModel):
    """Webhook body. Values are checked by the gateway, not by pydantic."""

    token: Any = None
    type: Any = None


class UserCreate(BaseModel):
    username: str


class SensorCreate(BaseModel):
    name: str


def _make_api_key_check(api_key: str | None):
    async def verify_api_key(key: str = Security(_api_key_header)):
        """Verify API key if one is configured, otherwise allow all."""
        if api_key and key != api_key:
            raise HTTPException(status_code=403, detail="Invalid API key")

    return verify_api_key


def _make_current_user(hub: PresenceHub):
    async def current_user(x_user_id: str | None = Header(default=None)) -> User:
        """Resolve the user id forwarded by the session layer in front of Vigil."""
        if not x_user_id:
            raise HTTPException(status_code=401, detail="Not authenticated")
        try:
            return await hub.users.get_user(int(x_user_id))
        except (ValueError, UserNotFoundError):
            raise HTTPException(status_code=401, detail="Not authenticated") from None

    return current_user


def _register_webhook_routes(app: FastAPI, hub: PresenceHub, timeout: float) -> None:
    """Register the sensor-facing webhook (token auth, no API key)."""

    @app.exception_handler(RequestValidationError)
    async def webhook_body_error(request: Request, exc: RequestValidationError):
        # A body with no readable token gets the same answer as a wrong token
        if request.url.path == "/webhook/detect":
            return JSONResponse(status_code=400, content={"message": "Invalid token"})
        return await request_validation_exception_handler(request, exc)

    @app.post("/webhook/detect")
    async def detect(payload: DetectionPayload):
        """Record a detection from a physical sensor."""
        try:
            # A missing or non-string token is just another unknown token
            token = payload.token if isinstance(payload.token, str) else ""
            result = await asyncio.wait_for(hub.gateway.ingest(token, payload.type), timeout=timeout)
        except TimeoutError:
            logger.warning("Detection timed out after %.1fs", timeout)
            return JSONResponse(status_code=504, content={"message": "Request timed out"})
        except ValidationError as e:
            return JSONResponse(status_code=422, content={"message": str(e)})
        except Exception:
            logger.exception("Error recording detection")
            return JSONResponse(status_code=500, content={"message": "Could not record event"})

        if not result.accepted:
            return JSONResponse(status_code=400, content={"message": "Invalid token"})
        return JSONResponse(
            status_code=201,
            content={"message": "Data received", "data": result.event.to_dict()},
        )


def _register_user_routes(router: APIRouter, hub: PresenceHub) -> None:
    """Register user registration endpoint used by the identity layer."""

    @router.post("/api/users", status_code=201)
    async def create_user(body: UserCreate):
        """Register a username."""
        try:
            user = await hub.users.create_user(body.username)
            return user.to_dict()
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e)) from None
        except DuplicateUsernameError:
            raise HTTPException(status_code=409, detail="Username taken") from None
        except Exception:
            logger.exception("Error creating user")
            raise HTTPException(status_code=500, detail="Error creating account") from None


def _register_sensor_routes(router: APIRouter, hub: PresenceHub, current_user) -> None:
    """Register sensor management endpoints."""

    @router.post("/api/sensors", status_code=201)
    async def register_sensor(body: SensorCreate, user: User = Depends(current_user)):  # noqa: B008
        """Register a sensor. The response is the only place its token is shown."""
        try:
            sensor = await hub.sensors.register_sensor(user.id, body.name)
            return sensor.to_dict(include_token=True)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e)) from None
        except Exception:
            logger.exception("Error creating sensor for user %d", user.id)
            raise HTTPException(status_code=500, detail="Could not create sensor") from None

    @router.get("/api/sensors")
    async def list_sensors(user: User = Depends(current_user)):  # noqa: B008
        """List sensors owned by the current user."""
        try:
            sensors = await hub.sensors.list_sensors(user.id)
            return {"sensors": [s.to_dict() for s in sensors], "count": len(sensors)}
        except Exception:
            logger.exception("Error listing sensors for user %d", user.id)
            raise HTTPException(status_code=500, detail="Internal server error") from None

    @router.get("/api/sensors/{sensor_id}")
    async def get_sensor(sensor_id: int, user: User = Depends(current_user)):  # noqa: B008
        """Sensor detail with full event history, oldest first."""
        try:
            detail = await hub.aggregation.sensor_detail(user.id, sensor_id)
            return detail.to_dict()
        except SensorNotFoundError:
            raise HTTPException(status_code=404, detail=f"Sensor {sensor_id} not found") from None
        except Exception:
            logger.exception("Error getting sensor %d", sensor_id)
            raise HTTPException(status_code=500, detail="Internal server error") from None


def _register_dashboard_routes(router: APIRouter, hub: PresenceHub, current_user, timeout: float) -> None:
    """Register the dashboard read endpoint."""

    @router.get("/api/dashboard")
    async def dashboard(user: User = Depends(current_user)):  # noqa: B008
        """Presence statistics for every sensor of the current user."""
        try:
            summary = await asyncio.wait_for(hub.aggregation.dashboard_summary(user.id), timeout=timeout)
        except TimeoutError:
            logger.warning("Dashboard for user %d timed out after %.1fs", user.id, timeout)
            raise HTTPException(status_code=504, detail="Request timed out") from None
        except PersistenceError:
            raise HTTPException(status_code=500, detail="Could not load dashboard") from None
        except Exception:
            logger.exception("Error building dashboard for user %d", user.id)
            raise HTTPException(status_code=500, detail="Could not load dashboard") from None

        payload = summary.to_dict()
        missing = validate_dashboard_payload(payload)
        if missing:
            logger.warning("Dashboard payload missing keys: %s", missing)
        return payload


def _register_utility_routes(router: APIRouter) -> None:
    from vigil import __version__

    @router.get("/api/version")
    async def get_version():
        """Return package version and runtime info."""
        return {
            "version": __version__,
            "package": "vigil",
            "python": f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
        }


def create_api(hub: PresenceHub, config: VigilConfig | None = None) -> FastAPI:
    """Create FastAPI application with hub routes.

    Args:
        hub: PresenceHub instance
        config: Server settings (API key, request timeout); defaults from env

    Returns:
        FastAPI application
    """
    from vigil import __version__

    config = config or VigilConfig.from_env()

    app = FastAPI(
        title="Vigil",
        description="REST API for Vigil presence sensors",
        version=__version__,
    )

    # --- Request timing middleware ---
    @app.middleware("http")
    async def request_timing_middleware(request: Request, call_next):
        hub._request_count += 1
        start = time.monotonic()
        response = await call_next(request)
        elapsed = time.monotonic() - start
        if elapsed > 1.0:
            logger.warning(f"{request.method} {request.url.path} took {elapsed:.2f}s")
        else:
            logger.debug(f"{request.method} {request.url.path} took {elapsed:.3f}s")
        return response

    # /api/* routes require the API key when one is configured
    router = APIRouter(dependencies=[Depends(_make_api_key_check(config.api_key))])
    current_user = _make_current_user(hub)

    # Unauthenticated health endpoints
    @app.get("/")
    async def root():
        """API root - health check."""
        return {"status": "ok", "service": "Vigil"}

    @app.get("/health")
    async def health():
        """Detailed health check with store counts and uptime."""
        try:
            health_data = await hub.health_check()
            return JSONResponse(content=health_data)
        except Exception:
            logger.exception("Health check failed")
            return JSONResponse(status_code=500, content={"status": "error", "error": "Health check failed"})

    _register_webhook_routes(app, hub, config.request_timeout)
    _register_utility_routes(router)
    _register_user_routes(router, hub)
    _register_sensor_routes(router, hub, current_user)
    _register_dashboard_routes(router, hub, current_user, config.request_timeout)

    app.include_router(router)

    return app
