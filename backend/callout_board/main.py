from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, load_settings
from .errors import NotFoundError, ValidationError
from .hub import StateHub, create_hub
from .schemas import (
    AssignedResourceRead,
    BoardMove,
    BoardRead,
    CallOutCreate,
    CallOutRead,
    CallOutUpdate,
    IntegrityWarningRead,
    ResourceCreate,
    ResourceRead,
    ResourceUpdate,
    to_validation_error,
)
from .security.rate_limit import mutation_rate_limit
from .ws import ws_router

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def get_hub(request: Request) -> StateHub:
    return request.app.state.hub


def not_found_handler(_request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": exc.detail})


def validation_error_handler(_request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": exc.detail, "errors": exc.errors},
    )


def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Same body as store validation failures, whichever layer rejected the input.
    return validation_error_handler(request, to_validation_error(exc.errors()))


def create_app(settings: Settings | None = None, hub: StateHub | None = None) -> FastAPI:
    """Build the API around one hub.

    Without an explicit ``hub`` the resource seed is loaded on startup, before
    the first request is served.
    """
    settings = settings if settings is not None else load_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Call-out Board", version="0.1.0")
    app.state.settings = settings
    app.state.hub = hub
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.include_router(ws_router)

    @app.on_event("startup")
    def on_startup() -> None:
        if app.state.hub is None:
            app.state.hub = create_hub(settings, seed=True)
        logger.info(
            "Call-out board ready with %s resource(s)",
            len(app.state.hub.store.list_resources()),
        )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    # --- Call-outs ---
    @app.get("/api/callouts", response_model=list[CallOutRead])
    def list_callouts(hub: StateHub = Depends(get_hub)):
        return hub.store.list_callouts()

    @app.post(
        "/api/callouts",
        response_model=CallOutRead,
        status_code=status.HTTP_201_CREATED,
        dependencies=[Depends(mutation_rate_limit)],
    )
    def create_callout(payload: CallOutCreate, hub: StateHub = Depends(get_hub)):
        return hub.store.create_callout(payload)

    @app.get("/api/callouts/{callout_id}", response_model=CallOutRead)
    def get_callout(callout_id: str, hub: StateHub = Depends(get_hub)):
        return hub.store.get_callout(callout_id)

    @app.patch(
        "/api/callouts/{callout_id}",
        response_model=CallOutRead,
        dependencies=[Depends(mutation_rate_limit)],
    )
    def update_callout(callout_id: str, payload: CallOutUpdate, hub: StateHub = Depends(get_hub)):
        return hub.store.update_callout(callout_id, payload)

    @app.delete(
        "/api/callouts/{callout_id}",
        status_code=status.HTTP_204_NO_CONTENT,
        dependencies=[Depends(mutation_rate_limit)],
    )
    def delete_callout(callout_id: str, hub: StateHub = Depends(get_hub)):
        hub.store.delete_callout(callout_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    # --- Assignments ---
    @app.get("/api/callouts/{callout_id}/resources", response_model=list[AssignedResourceRead])
    def list_assigned_resources(callout_id: str, hub: StateHub = Depends(get_hub)):
        return hub.assignments.resolve(callout_id)

    @app.put(
        "/api/callouts/{callout_id}/resources/{resource_id}",
        response_model=CallOutRead,
        dependencies=[Depends(mutation_rate_limit)],
    )
    def assign_resource(callout_id: str, resource_id: str, hub: StateHub = Depends(get_hub)):
        return hub.assignments.assign(callout_id, resource_id)

    @app.delete(
        "/api/callouts/{callout_id}/resources/{resource_id}",
        response_model=CallOutRead,
        dependencies=[Depends(mutation_rate_limit)],
    )
    def unassign_resource(callout_id: str, resource_id: str, hub: StateHub = Depends(get_hub)):
        return hub.assignments.unassign(callout_id, resource_id)

    # --- Resources ---
    @app.get("/api/resources", response_model=list[ResourceRead])
    def list_resources(hub: StateHub = Depends(get_hub)):
        return hub.store.list_resources()

    @app.post(
        "/api/resources",
        response_model=ResourceRead,
        status_code=status.HTTP_201_CREATED,
        dependencies=[Depends(mutation_rate_limit)],
    )
    def create_resource(payload: ResourceCreate, hub: StateHub = Depends(get_hub)):
        return hub.store.create_resource(payload)

    @app.get("/api/resources/{resource_id}", response_model=ResourceRead)
    def get_resource(resource_id: str, hub: StateHub = Depends(get_hub)):
        return hub.store.get_resource(resource_id)

    @app.patch(
        "/api/resources/{resource_id}",
        response_model=ResourceRead,
        dependencies=[Depends(mutation_rate_limit)],
    )
    def update_resource(resource_id: str, payload: ResourceUpdate, hub: StateHub = Depends(get_hub)):
        return hub.store.update_resource(resource_id, payload)

    @app.delete(
        "/api/resources/{resource_id}",
        status_code=status.HTTP_204_NO_CONTENT,
        dependencies=[Depends(mutation_rate_limit)],
    )
    def delete_resource(resource_id: str, hub: StateHub = Depends(get_hub)):
        hub.store.delete_resource(resource_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    # --- Board ---
    @app.get("/api/board", response_model=BoardRead)
    def get_board(hub: StateHub = Depends(get_hub)):
        return BoardRead(pools=hub.board.pools())

    @app.post(
        "/api/board/moves",
        response_model=BoardRead,
        dependencies=[Depends(mutation_rate_limit)],
    )
    def move_resource(payload: BoardMove, hub: StateHub = Depends(get_hub)):
        return BoardRead(pools=hub.board.move(payload))

    @app.get("/api/integrity", response_model=list[IntegrityWarningRead])
    def integrity_report(hub: StateHub = Depends(get_hub)):
        return [
            IntegrityWarningRead(
                callout_id=warning.callout_id,
                resource_id=warning.resource_id,
                reason=warning.reason,
            )
            for warning in hub.store.integrity_report()
        ]

    return app


app = create_app()
