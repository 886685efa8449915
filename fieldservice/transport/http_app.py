# fieldservice/transport/http_app.py
"""
HTTP API for the dispatch services.

Thin layer: parse the request, call one service method, serialize the
result. ``DispatchError`` subtypes are mapped to JSON error responses by a
single exception handler; no business rule lives in a route.

Identity is resolved upstream; the acting user id arrives in ``X-User-Id``.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.websockets import WebSocketDisconnect

from fieldservice.config import settings
from fieldservice.core.domain import NotificationRequest, TaskStatus
from fieldservice.core.errors import DispatchError, InvalidArgumentError, ThrottledError
from fieldservice.core.services import DispatchServices, build_services
from fieldservice.infra.db_async import close_pool, init_pool
from fieldservice.infra.logging_config import get_logger, setup_logging
from fieldservice.infra.metrics import get_metrics_collector
from fieldservice.transport.middleware import (
    ErrorHandlingMiddleware,
    RequestIDMiddleware,
    RequestLoggingMiddleware,
)
from fieldservice.transport.schemas import (
    AssignRequest,
    CompleteRequest,
    LocationReportRequest,
    LocationResponse,
    NotificationResponse,
    NotificationSendRequest,
    RetrySummaryResponse,
    TaskCreateRequest,
    TaskLocationResponse,
    TaskResponse,
    TaskStatusResponse,
    TaskUpdateRequest,
    TechnicianResponse,
)

setup_logging(
    level=settings.log_level,
    use_json=settings.is_production
)

logger = get_logger(__name__)


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_services(request: Request) -> DispatchServices:
    """Get services from app state"""
    return request.app.state.services


def require_user_id(x_user_id: str | None = Header(default=None)) -> str:
    if not x_user_id:
        raise InvalidArgumentError("X-User-Id header is required")
    return x_user_id


# ============================================================================
# LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    """Application lifecycle: startup and shutdown"""
    logger.info(f"Starting application: env={settings.app_env}, storage={settings.storage_backend}")

    uses_pool = False
    if getattr(fastapi_app.state, "services", None) is None:
        if settings.storage_backend == "postgres":
            await init_pool()
            uses_pool = True
        fastapi_app.state.services = build_services(settings)

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application")
    services: DispatchServices = fastapi_app.state.services
    pending = services.notifications.pending_count
    if pending:
        logger.info(f"Waiting for {pending} pending notifications")
    await services.notifications.drain()

    if uses_pool:
        await close_pool()
    logger.info("Application shutdown complete")


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

async def dispatch_error_handler(request: Request, exc: DispatchError):
    if exc.status_code >= 500:
        logger.error(f"Server error: {exc.detail}", extra={"status_code": exc.status_code})

    headers = None
    if isinstance(exc, ThrottledError):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        f"{'.'.join(str(p) for p in err['loc'] if p != 'body')}: {err['msg']}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": "; ".join(errors), "code": InvalidArgumentError.code},
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=exc.headers,
    )


# ============================================================================
# ROUTES
# ============================================================================

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "healthy"}


@router.get("/metrics")
def metrics():
    if not settings.enable_metrics:
        raise HTTPException(status_code=404, detail="Not found")
    return get_metrics_collector().get_metrics()


# --- Tasks ------------------------------------------------------------------

@router.post("/tasks", response_model=TaskResponse, status_code=201)
async def create_task(payload: TaskCreateRequest, services: DispatchServices = Depends(get_services)):
    return await services.tasks.create(**payload.model_dump())


@router.get("/tasks", response_model=list[TaskResponse])
async def list_tasks(
    status: TaskStatus | None = None,
    technician_id: str | None = None,
    services: DispatchServices = Depends(get_services),
):
    if status is not None:
        return await services.tasks.list_by_status(status)
    if technician_id is not None:
        return await services.tasks.list_for_technician(technician_id)
    return await services.tasks.list_all()


@router.get("/tasks/unassigned", response_model=list[TaskResponse])
async def list_unassigned_tasks(services: DispatchServices = Depends(get_services)):
    return await services.tasks.list_unassigned()


@router.get("/tasks/{task_id}", response_model=TaskResponse)
async def get_task(task_id: str, services: DispatchServices = Depends(get_services)):
    return await services.tasks.get(task_id)


@router.put("/tasks/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: str,
    payload: TaskUpdateRequest,
    services: DispatchServices = Depends(get_services),
):
    return await services.tasks.update(task_id, **payload.model_dump(exclude_none=True))


@router.post("/tasks/{task_id}/assign", response_model=TaskResponse)
async def assign_task(
    task_id: str,
    payload: AssignRequest,
    dispatcher_id: str = Depends(require_user_id),
    services: DispatchServices = Depends(get_services),
):
    return await services.assignment.assign(task_id, payload.technician_id, dispatcher_id)


@router.post("/tasks/{task_id}/start", response_model=TaskResponse)
async def start_task(task_id: str, services: DispatchServices = Depends(get_services)):
    return await services.lifecycle.start(task_id)


@router.post("/tasks/{task_id}/complete", response_model=TaskResponse)
async def complete_task(
    task_id: str,
    payload: CompleteRequest,
    services: DispatchServices = Depends(get_services),
):
    return await services.lifecycle.complete(task_id, payload.work_summary)


@router.post("/tasks/{task_id}/cancel", response_model=TaskResponse)
async def cancel_task(task_id: str, services: DispatchServices = Depends(get_services)):
    return await services.lifecycle.cancel(task_id)


@router.get("/tasks/{task_id}/status", response_model=TaskStatusResponse)
async def get_task_status(task_id: str, services: DispatchServices = Depends(get_services)):
    status = await services.lifecycle.get_status(task_id)
    return TaskStatusResponse(task_id=task_id, status=status)


@router.get("/technicians/available", response_model=list[TechnicianResponse])
async def available_technicians(services: DispatchServices = Depends(get_services)):
    return await services.assignment.list_available_technicians()


# --- Locations --------------------------------------------------------------

@router.post("/locations", response_model=LocationResponse, status_code=201)
async def report_location(
    payload: LocationReportRequest,
    technician_id: str = Depends(require_user_id),
    services: DispatchServices = Depends(get_services),
):
    return await services.tracking.report(
        technician_id, payload.latitude, payload.longitude, payload.accuracy
    )


@router.get("/locations/technicians", response_model=list[LocationResponse])
async def active_technician_locations(
    since_minutes: int | None = None,
    services: DispatchServices = Depends(get_services),
):
    if since_minutes is not None and since_minutes <= 0:
        raise InvalidArgumentError("since_minutes must be positive")
    return await services.tracking.latest_per_technician(since_minutes)


@router.get("/locations/technicians/{technician_id}", response_model=LocationResponse)
async def technician_location(technician_id: str, services: DispatchServices = Depends(get_services)):
    return await services.tracking.latest_for_technician(technician_id)


@router.get("/locations/tasks", response_model=list[TaskLocationResponse])
async def task_locations(services: DispatchServices = Depends(get_services)):
    return await services.tracking.task_locations()


# --- Notifications ----------------------------------------------------------

@router.post("/notifications", response_model=NotificationResponse)
async def send_notification(
    payload: NotificationSendRequest,
    services: DispatchServices = Depends(get_services),
):
    request = NotificationRequest(**payload.model_dump())
    return await services.notifications.attempt_send(request)


@router.get("/notifications/task/{task_id}", response_model=list[NotificationResponse])
async def task_notifications(task_id: str, services: DispatchServices = Depends(get_services)):
    return await services.notifications.list_for_task(task_id)


@router.post("/notifications/retry", response_model=RetrySummaryResponse)
async def retry_notifications(services: DispatchServices = Depends(get_services)):
    return await services.notifications.retry_failed()


# --- Live updates -----------------------------------------------------------

async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws/locations")
async def live_locations(websocket: WebSocket):
    services: DispatchServices = websocket.app.state.services
    await websocket.accept()
    async with services.live.subscribe(services.location_topic) as subscription:
        # Watch the client side too, so idle subscribers go away on disconnect
        disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
        try:
            while True:
                next_payload = asyncio.create_task(subscription.get())
                done, _ = await asyncio.wait(
                    {next_payload, disconnected}, return_when=asyncio.FIRST_COMPLETED
                )
                if disconnected in done:
                    next_payload.cancel()
                    break
                await websocket.send_json(next_payload.result())
        except WebSocketDisconnect:
            pass
        finally:
            disconnected.cancel()
    logger.debug("Live location client disconnected")


# ============================================================================
# CREATE APP
# ============================================================================

def create_app(services: DispatchServices | None = None) -> FastAPI:
    fastapi_app = FastAPI(
        title="Field Service Dispatch",
        description="Task dispatch, technician tracking and customer notifications",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
        openapi_url=None if settings.is_production else "/openapi.json",
    )
    fastapi_app.state.services = services

    if settings.is_production or settings.is_staging:
        fastapi_app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins if settings.allowed_origins != ["*"] else [],
            allow_credentials=False,
            allow_methods=["GET", "POST", "PUT"],
            allow_headers=["Content-Type", "Authorization", "X-User-Id"],
        )
    else:
        fastapi_app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    fastapi_app.add_middleware(ErrorHandlingMiddleware)
    fastapi_app.add_middleware(RequestLoggingMiddleware, enabled=settings.enable_request_logging)
    fastapi_app.add_middleware(RequestIDMiddleware)

    fastapi_app.add_exception_handler(DispatchError, dispatch_error_handler)
    fastapi_app.add_exception_handler(RequestValidationError, validation_error_handler)
    fastapi_app.add_exception_handler(HTTPException, http_exception_handler)

    fastapi_app.include_router(router)
    return fastapi_app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "fieldservice.transport.http_app:app",
        host="0.0.0.0",
        port=8080,
        reload=not settings.is_production,
        log_level=settings.log_level.lower(),
        access_log=not settings.is_production,  # request logging middleware covers prod
        server_header=False,
        date_header=False,
    )
