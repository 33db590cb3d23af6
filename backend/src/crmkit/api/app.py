"""FastAPI application."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from crmkit.auth import AuthMiddleware, JWTService, Principal
from crmkit.config import Settings
from crmkit.errors import (
    AuthenticationError,
    ConfigurationError,
    DataSourceError,
    MutationError,
    UnknownCollectionError,
)
from crmkit.fields import FieldTypeResolver, RenderMode
from crmkit.hooks import HookService, register_builtin_hooks
from crmkit.hydration import RecordHydrator
from crmkit.metadata.loader import CollectionDescriptor
from crmkit.metadata.registry import CollectionRegistry
from crmkit.metadata.validator import validate_metadata_dir
from crmkit.mutations import MutationGateway
from crmkit.persistence import DatabaseConfig, SqlDataSource, create_data_source, eq_filter
from crmkit.views import (
    TableView,
    build_calendar,
    build_kanban,
    build_quick_view,
    build_record_filter,
    move_card,
    render_detail,
    sort_records,
)

logger = logging.getLogger(__name__)

# Global instances (initialized on startup)
settings: Settings | None = None
registry: CollectionRegistry | None = None
source: SqlDataSource | None = None
gateway: MutationGateway | None = None
hydrator: RecordHydrator | None = None
resolver: FieldTypeResolver | None = None
jwt_service: JWTService | None = None
fallback_principal: Principal | None = None


def _base_path() -> Path:
    # Metadata lives beside backend/ when the server is started from there
    cwd = Path.cwd()
    return cwd.parent if cwd.name == "backend" else cwd


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize on startup, cleanup on shutdown."""
    global settings, registry, source, gateway, hydrator, resolver, jwt_service, fallback_principal

    base_path = _base_path()
    settings = Settings.from_env(base_path)
    logging.basicConfig(level=settings.log_level.upper())

    register_builtin_hooks()

    # Schema problems are reported but do not block startup; relation
    # errors still fail below when the registry is built.
    schema_issues = validate_metadata_dir(settings.metadata_path)
    for issue in schema_issues:
        if issue.severity == "error":
            logger.error("Metadata schema error: %s", issue)
        else:
            logger.warning("Metadata schema warning: %s", issue)
    if schema_issues:
        logger.warning(
            "Metadata validation: %d issue(s). Run 'crmkit collections validate' for details.",
            len(schema_issues),
        )

    registry = CollectionRegistry.from_path(settings.metadata_path)
    source = create_data_source(DatabaseConfig(url=settings.backend_url), registry)
    gateway = MutationGateway(registry, source, HookService())
    hydrator = RecordHydrator(source, registry)
    resolver = FieldTypeResolver(registry)

    if settings.auth_enabled:
        jwt_service = JWTService(settings.jwt_secret)
        fallback_principal = None
    else:
        jwt_service = None
        fallback_principal = Principal(user_id=settings.service_account, role="service")
        logger.warning("Authentication disabled; acting as service account")

    yield

    # Cleanup
    if source is not None:
        source.close()
    registry = source = gateway = hydrator = resolver = jwt_service = fallback_principal = None


app = FastAPI(title="crmkit API", lifespan=lifespan)

# CORS for frontend dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(
    AuthMiddleware,
    get_jwt_service=lambda: jwt_service,
    get_fallback_principal=lambda: fallback_principal,
)


# --- Error handlers ---


@app.exception_handler(UnknownCollectionError)
async def unknown_collection_handler(request: Request, exc: UnknownCollectionError):
    return JSONResponse(status_code=404, content=exc.to_dict())


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    return JSONResponse(status_code=400, content=exc.to_dict())


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    return JSONResponse(
        status_code=401,
        content=exc.to_dict(),
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(MutationError)
async def mutation_error_handler(request: Request, exc: MutationError):
    return JSONResponse(status_code=422, content=exc.to_dict())


@app.exception_handler(DataSourceError)
async def data_source_error_handler(request: Request, exc: DataSourceError):
    logger.error("Record store failure: %s", exc)
    return JSONResponse(status_code=502, content=exc.to_dict())


def _require_initialized() -> tuple[CollectionRegistry, SqlDataSource, MutationGateway, RecordHydrator]:
    if registry is None or source is None or gateway is None or hydrator is None:
        raise HTTPException(500, "Not initialized")
    return registry, source, gateway, hydrator


async def _load_record(descriptor: CollectionDescriptor, record_id: int) -> dict[str, Any]:
    _, db, _, hyd = _require_initialized()
    rows = await db.select(descriptor.name, eq_filter("id", record_id))
    if not rows:
        raise HTTPException(404, "Record not found")
    return await hyd.hydrate(rows[0], descriptor)


# --- Collection Endpoints ---


@app.get("/api/collections")
async def list_collections() -> dict[str, Any]:
    """List all registered collections."""
    reg, *_ = _require_initialized()
    return {
        "collections": [
            {
                "key": c.key,
                "label": c.label,
                "singularLabel": c.singular_label,
            }
            for c in reg.list()
        ]
    }


@app.get("/api/collections/{key}")
async def get_collection(key: str) -> dict[str, Any]:
    """Full descriptor for a collection."""
    reg, *_ = _require_initialized()
    return reg.require(key).to_dict()


# --- Record Endpoints ---


class CreateRequest(BaseModel):
    """Request body for create operations."""
    data: dict[str, Any]


class UpdateRequest(BaseModel):
    """Request body for update operations."""
    data: dict[str, Any]


class DeleteRequest(BaseModel):
    """Request body for bulk delete."""
    ids: list[int]


class MoveCardRequest(BaseModel):
    """Request body for moving a kanban card to another column."""
    value: Any = None
    groupBy: str | None = None


@app.get("/api/collections/{key}/records")
async def list_records(
    key: str, request: Request, sort: str | None = None, direction: str = "asc"
) -> dict[str, Any]:
    """Records of a collection, hydrated, with the table view model.

    Other query parameters are matched against the collection's declared
    filters; undeclared ones are ignored.
    """
    reg, db, _, hyd = _require_initialized()
    descriptor = reg.require(key)
    filter_values = {
        k: v for k, v in request.query_params.items() if k not in ("sort", "direction")
    }
    rows = await db.select(descriptor.name, build_record_filter(descriptor, filter_values))
    records = sort_records(descriptor, await hyd.hydrate_many(rows, descriptor), sort, direction)
    view = TableView(descriptor, resolver=resolver)
    try:
        table = view.render(records, filter_values).to_dict()
    finally:
        view.unmount()
    return {"data": records, "view": table}


@app.post("/api/collections/{key}/records", status_code=201)
async def create_record(key: str, request: CreateRequest) -> dict[str, Any]:
    reg, _, gw, hyd = _require_initialized()
    descriptor = reg.require(key)
    record = await gw.create(key, request.data)
    return {"data": await hyd.hydrate(record, descriptor)}


@app.post("/api/collections/{key}/records/delete")
async def delete_records(key: str, request: DeleteRequest):
    """Cascade-delete records. A failed dependency delete leaves the targets in place."""
    reg, _, gw, _ = _require_initialized()
    reg.require(key)
    result = await gw.delete_many(key, request.ids)
    if not result.success:
        return JSONResponse(status_code=409, content=result.to_dict())
    return result.to_dict()


@app.get("/api/collections/{key}/records/{record_id}")
async def get_record(key: str, record_id: int) -> dict[str, Any]:
    """A hydrated record with its detail view model."""
    reg, *_ = _require_initialized()
    descriptor = reg.require(key)
    record = await _load_record(descriptor, record_id)
    return {
        "data": record,
        "view": render_detail(descriptor, record, RenderMode.VIEW, resolver).to_dict(),
    }


@app.get("/api/collections/{key}/records/{record_id}/quick-view")
async def get_quick_view(key: str, record_id: int) -> dict[str, Any]:
    reg, *_ = _require_initialized()
    descriptor = reg.require(key)
    record = await _load_record(descriptor, record_id)
    return build_quick_view(descriptor, record, resolver).to_dict()


@app.patch("/api/collections/{key}/records/{record_id}")
async def update_record(key: str, record_id: int, request: UpdateRequest) -> dict[str, Any]:
    """Partial update; last write wins."""
    reg, db, gw, hyd = _require_initialized()
    descriptor = reg.require(key)
    if not await db.select(descriptor.name, eq_filter("id", record_id)):
        raise HTTPException(404, "Record not found")
    record = await gw.update(key, record_id, request.data)
    return {"data": await hyd.hydrate(record, descriptor)}


# --- Board and Calendar Endpoints ---


@app.get("/api/collections/{key}/kanban")
async def get_kanban(key: str, groupBy: str | None = None) -> dict[str, Any]:
    reg, db, _, hyd = _require_initialized()
    descriptor = reg.require(key)
    records = await hyd.hydrate_many(await db.select(descriptor.name), descriptor)
    columns = build_kanban(descriptor, records, groupBy)
    return {"collection": key, "columns": [c.to_dict() for c in columns]}


@app.patch("/api/collections/{key}/kanban/{record_id}")
async def move_kanban_card(key: str, record_id: int, request: MoveCardRequest) -> dict[str, Any]:
    """Move a card by writing the new column value to its group-by field."""
    reg, db, gw, hyd = _require_initialized()
    descriptor = reg.require(key)
    if not await db.select(descriptor.name, eq_filter("id", record_id)):
        raise HTTPException(404, "Record not found")
    record = await move_card(gw, descriptor, record_id, request.value, request.groupBy)
    return {"data": await hyd.hydrate(record, descriptor)}


@app.get("/api/collections/{key}/calendar")
async def get_calendar(key: str, start: str | None = None, end: str | None = None) -> dict[str, Any]:
    reg, db, _, _ = _require_initialized()
    descriptor = reg.require(key)
    records = await db.select(descriptor.name)
    try:
        events = build_calendar(descriptor, records, start, end)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return {"collection": key, "events": [e.to_dict() for e in events]}
