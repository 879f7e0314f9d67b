"""
Guest Check-in Backend
======================
Flow:
1. Operator front end imports the guest spreadsheet (/import, /import/csv)
2. Guests are found by name or host (/guests/search, /members/...)
3. Check-ins and check-outs are toggled (/toggle) and can be undone (/undo)
4. Dashboard polls /stats; /export writes a CSV snapshot

Every endpoint takes an optional db_path; all storage work runs on the
worker thread pool.
"""

import logging
from typing import Any, Callable, List, Optional

from fastapi import APIRouter, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool

from . import config
from .errors import GuestNotFoundError, InvalidActionError
from .database import (
    CheckinService,
    ExportService,
    ImportMode,
    ImportRow,
    ImportService,
    SearchService,
    StatsService,
    UndoStack,
    get_db_manager,
    read_import_csv,
    reset_db_managers,
)

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# ============== Request Models ==============
class DatabaseRequest(BaseModel):
    db_path: Optional[str] = Field(None, description="SQLite file; defaults to CHECKIN_DB_PATH")


class ImportRowModel(BaseModel):
    """One spreadsheet row. Accepts snake_case or the front end's camelCase keys."""
    model_config = ConfigDict(populate_by_name=True)

    member_name: Optional[str] = Field(None, alias="memberName")
    guest_names: Optional[str] = Field(None, alias="guestNames")
    source_row: Optional[int] = Field(None, alias="sourceRow")
    check_in: Optional[str] = Field(None, alias="checkIn")
    check_in_time: Optional[str] = Field(None, alias="checkInTime")
    check_out: Optional[str] = Field(None, alias="checkOut")
    check_out_time: Optional[str] = Field(None, alias="checkOutTime")

    def to_import_row(self) -> ImportRow:
        return ImportRow(**self.model_dump())


class ImportRequest(DatabaseRequest):
    rows: List[ImportRowModel] = Field(default_factory=list)
    mode: ImportMode = Field(ImportMode.APPEND, description="replace or append")


class ToggleRequest(DatabaseRequest):
    guest_id: int
    action: str = Field(..., description="in or out")
    operator: Optional[str] = None
    force: bool = False


class ExportRequest(DatabaseRequest):
    out_dir: Optional[str] = Field(None, description="Output directory; defaults to the desktop")


# ============== Response Models ==============
class ImportSummaryResponse(BaseModel):
    inserted: int
    total_rows: int


class GuestResult(BaseModel):
    id: int
    display_name: str
    member_host: Optional[str] = None
    is_checked_in: bool
    has_history: bool


class MemberResult(BaseModel):
    member_host: str
    total_guests: int
    present_guests: int


class ToggleResponse(BaseModel):
    status: str = Field(..., description="checked_in, checked_out, already_in, not_checked_in or never_checked_in")
    guest_id: int
    checkin_id: Optional[int] = None
    timestamp: Optional[str] = None


class UndoResponse(BaseModel):
    status: str = Field(..., description="reverted_check_in, reverted_check_out or empty")


class ExportResponse(BaseModel):
    path: str


class PresentGuest(BaseModel):
    id: int
    display_name: str
    member_host: Optional[str] = None
    in_ts: Optional[str] = None
    operator: Optional[str] = None


class StatsResponse(BaseModel):
    total_guests: int
    total_check_ins: int
    total_check_outs: int
    currently_present: int
    present_guests: List[PresentGuest]
    top_hosts: List[MemberResult]


# ============== Helpers ==============
async def run_db_task(func: Callable[..., Any], *args, **kwargs) -> Any:
    """Run blocking storage work on the worker pool."""
    return await run_in_threadpool(func, *args, **kwargs)


def _http_error(e: Exception, context: str) -> HTTPException:
    if isinstance(e, GuestNotFoundError):
        status_code = 404
    elif isinstance(e, InvalidActionError):
        status_code = 400
    else:
        status_code = 500
    logger.error(f"{context}: {e}")
    return HTTPException(status_code=status_code, detail=str(e))


def _undo_stack(request: Request) -> UndoStack:
    return request.app.state.undo_stack


router = APIRouter()


@router.get("/")
async def root(request: Request):
    """Health check endpoint."""
    return {
        "status": "online",
        "service": "Guest Check-in API",
        "database_path": str(config.DATABASE_PATH),
        "timezone": config.TIMEZONE_NAME,
        "undo_depth": len(_undo_stack(request)),
    }


@router.post("/init")
async def init_db(payload: DatabaseRequest):
    """Create the database file and schema if missing."""
    try:
        manager = await run_db_task(get_db_manager, payload.db_path)
        return {"success": True, "database_path": str(manager.db_path)}
    except Exception as e:
        raise _http_error(e, "Database initialization failed")


@router.post("/import", response_model=ImportSummaryResponse)
async def import_rows(payload: ImportRequest):
    """Import spreadsheet rows (already parsed by the caller)."""
    rows = [row.to_import_row() for row in payload.rows]

    def task():
        return ImportService(get_db_manager(payload.db_path)).import_rows(rows, payload.mode)

    try:
        summary = await run_db_task(task)
    except Exception as e:
        raise _http_error(e, "Import failed")

    return summary.to_dict()


@router.post("/import/csv", response_model=ImportSummaryResponse)
async def import_csv(
    file: UploadFile = File(...),
    mode: ImportMode = Query(ImportMode.APPEND, description="replace or append"),
    db_path: Optional[str] = Query(None, description="SQLite file; defaults to CHECKIN_DB_PATH"),
):
    """Import a spreadsheet uploaded as CSV with a header row."""
    contents = await file.read()
    try:
        text = contents.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV must be UTF-8 encoded")

    rows = read_import_csv(text)

    def task():
        return ImportService(get_db_manager(db_path)).import_rows(rows, mode)

    try:
        summary = await run_db_task(task)
    except Exception as e:
        raise _http_error(e, f"CSV import of {file.filename} failed")

    return summary.to_dict()


@router.get("/guests/search", response_model=List[GuestResult])
async def search_guests(
    q: str = Query("", description="Name query; empty lists guests alphabetically"),
    limit: Optional[int] = Query(None, description="Max results (default 25, capped at 100)"),
    db_path: Optional[str] = Query(None),
):
    def task():
        return SearchService(get_db_manager(db_path)).search_guests(q, limit)

    try:
        return await run_db_task(task)
    except Exception as e:
        raise _http_error(e, "Guest search failed")


@router.get("/members/search", response_model=List[MemberResult])
async def search_members(
    q: str = Query("", description="Host name query; empty matches every host"),
    limit: Optional[int] = Query(None, description="Max results (default 25, capped at 200)"),
    db_path: Optional[str] = Query(None),
):
    def task():
        return SearchService(get_db_manager(db_path)).search_members(q, limit)

    try:
        return await run_db_task(task)
    except Exception as e:
        raise _http_error(e, "Member search failed")


@router.get("/members/guests", response_model=List[GuestResult])
async def guests_for_member(
    member_host: str = Query(..., description="Exact host name (case-insensitive)"),
    db_path: Optional[str] = Query(None),
):
    def task():
        return SearchService(get_db_manager(db_path)).guests_for_member(member_host)

    try:
        return await run_db_task(task)
    except Exception as e:
        raise _http_error(e, "Guest lookup by host failed")


@router.post("/toggle", response_model=ToggleResponse)
async def toggle_checkin(payload: ToggleRequest, request: Request):
    """Check a guest in or out. Successful changes can be reverted with /undo."""
    undo_stack = _undo_stack(request)

    def task():
        service = CheckinService(get_db_manager(payload.db_path), undo_stack)
        return service.toggle(payload.guest_id, payload.action, payload.operator, payload.force)

    try:
        result = await run_db_task(task)
    except Exception as e:
        raise _http_error(e, f"Toggle {payload.action} for guest {payload.guest_id} failed")
    return result.to_dict()


@router.post("/undo", response_model=UndoResponse)
async def undo_last(payload: DatabaseRequest, request: Request):
    """Revert the most recent check-in or check-out, in whichever database it was made."""
    undo_stack = _undo_stack(request)

    def task():
        return CheckinService(get_db_manager(payload.db_path), undo_stack).undo_last()

    try:
        status = await run_db_task(task)
    except Exception as e:
        raise _http_error(e, "Undo failed")
    return {"status": status.value}


@router.post("/export", response_model=ExportResponse)
async def export_csv(payload: ExportRequest):
    """Write a CSV snapshot of all guests."""
    def task():
        return ExportService(get_db_manager(payload.db_path)).export_csv(payload.out_dir)

    try:
        path = await run_db_task(task)
    except Exception as e:
        raise _http_error(e, "Export failed")
    return {"path": str(path)}


@router.get("/stats", response_model=StatsResponse)
async def stats_summary(db_path: Optional[str] = Query(None)):
    def task():
        return StatsService(get_db_manager(db_path)).get_summary()

    try:
        return await run_db_task(task)
    except Exception as e:
        raise _http_error(e, "Stats failed")


def create_app() -> FastAPI:
    """Build the API with a fresh undo stack for this session."""
    app = FastAPI(
        title="Guest Check-in API",
        description="Live guest check-in/check-out with undo, spreadsheet import and search",
        version="1.0.0"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.undo_stack = UndoStack(max_size=config.UNDO_STACK_LIMIT)
    app.include_router(router)

    @app.on_event("startup")
    async def startup_event():
        """Open the default database."""
        logger.info("=" * 60)
        logger.info("Starting Guest Check-in Backend")
        logger.info("=" * 60)

        db_initialized = False
        try:
            await run_db_task(get_db_manager)
            db_initialized = True
        except Exception as e:
            logger.error(f"Default database initialization failed: {e}")

        logger.info(f"Database: {config.DATABASE_PATH} ({'ready' if db_initialized else 'unavailable'})")
        logger.info(f"Timezone: {config.TIMEZONE_NAME}")
        logger.info(f"Undo limit: {config.UNDO_STACK_LIMIT or 'unbounded'}")
        logger.info("=" * 60)

    @app.on_event("shutdown")
    async def shutdown_event():
        app.state.undo_stack.clear()
        await run_db_task(reset_db_managers)
        logger.info("Guest Check-in Backend stopped")

    return app


app = create_app()


def run():
    import uvicorn
    uvicorn.run(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    run()
