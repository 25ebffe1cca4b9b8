"""HTTP API for the HSA reimbursement ledger.

Run with ``uvicorn --factory hsa_reimbursements.api:create_app``.
"""

import logging
from collections.abc import Iterator
from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, File, Form, Header, Query, Request, Response, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from hsa_reimbursements import expenses, ledger, receipts
from hsa_reimbursements.auth import RequestContext, context_from_header
from hsa_reimbursements.categories import list_categories
from hsa_reimbursements.config import Settings, get_settings
from hsa_reimbursements.db import create_tables, make_engine, make_session_factory, session_scope
from hsa_reimbursements.errors import AuthError, LedgerError
from hsa_reimbursements.export import export_filename, iter_csv
from hsa_reimbursements.invalidation import Mutation, header_value
from hsa_reimbursements.models import ReceiptImage
from hsa_reimbursements.receipt_store import receipt_url
from hsa_reimbursements.schemas import (
    ArchiveIn,
    CategoryOut,
    DeletedOut,
    ExpenseIn,
    ExpenseOut,
    ImageOut,
    ReimbursementDeletedOut,
    ReimbursementIn,
    ReimbursementOut,
)
from hsa_reimbursements.summary import parse_range, summarize

logger = logging.getLogger(__name__)

INVALIDATE_HEADER = "X-Invalidate-Queries"


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session(request: Request) -> Iterator[Session]:
    with session_scope(request.app.state.session_factory) as session:
        yield session


def get_context(
    settings: Annotated[Settings, Depends(get_app_settings)],
    authorization: Annotated[str | None, Header()] = None,
) -> RequestContext:
    return context_from_header(authorization, settings)


SessionDep = Annotated[Session, Depends(get_session)]
ContextDep = Annotated[RequestContext, Depends(get_context)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]

router = APIRouter()


def _invalidates(response: Response, mutation: Mutation, expense_id: str) -> None:
    response.headers[INVALIDATE_HEADER] = header_value(mutation, expense_id)


def _image_out(image: ReceiptImage, settings: Settings) -> ImageOut:
    url = receipt_url(settings.bucket_name, image.storage_key, settings.receipt_url_ttl_seconds)
    return ImageOut(
        id=image.id,
        expense_id=image.expense_id,
        image_url=url,
        filename=image.filename,
        mime_type=image.mime_type,
        size_bytes=image.size_bytes,
        created_at=image.created_at,
    )


# ---------- Expenses ----------


@router.get("/expenses", response_model=list[ExpenseOut])
def list_expenses(session: SessionDep, ctx: ContextDep, status_: Annotated[str | None, Query(alias="status")] = None):
    return expenses.list_expenses(session, ctx, expenses.parse_status(status_))


@router.get("/expenses/{expense_id}", response_model=ExpenseOut)
def get_expense(expense_id: str, session: SessionDep, ctx: ContextDep):
    return expenses.get_expense(session, ctx, expense_id)


@router.post("/expenses", response_model=ExpenseOut, status_code=status.HTTP_201_CREATED)
def create_expense(payload: ExpenseIn, response: Response, session: SessionDep, ctx: ContextDep):
    expense = expenses.create_expense(session, ctx, **payload.model_dump())
    _invalidates(response, Mutation.CREATE_EXPENSE, expense.id)
    return expense


@router.put("/expenses/{expense_id}", response_model=ExpenseOut)
def update_expense(expense_id: str, payload: ExpenseIn, response: Response, session: SessionDep, ctx: ContextDep):
    expense = expenses.update_expense(session, ctx, expense_id, **payload.model_dump())
    _invalidates(response, Mutation.UPDATE_EXPENSE, expense.id)
    return expense


@router.patch("/expenses/{expense_id}/archive", response_model=ExpenseOut)
def archive_expense(
    expense_id: str, response: Response, session: SessionDep, ctx: ContextDep, payload: ArchiveIn | None = None
):
    archived = payload.archived if payload is not None else True
    expense = expenses.set_archived(session, ctx, expense_id, archived)
    _invalidates(response, Mutation.ARCHIVE_EXPENSE, expense.id)
    return expense


@router.delete("/expenses/{expense_id}", response_model=DeletedOut)
def delete_expense(expense_id: str, response: Response, session: SessionDep, ctx: ContextDep, settings: SettingsDep):
    expenses.delete_expense(session, ctx, expense_id, settings.bucket_name)
    _invalidates(response, Mutation.DELETE_EXPENSE, expense_id)
    return DeletedOut(deleted=expense_id)


# ---------- Categories ----------


@router.get("/categories", response_model=list[CategoryOut])
def get_categories(session: SessionDep, ctx: ContextDep):
    return list_categories(session)


# ---------- Receipts ----------


@router.get("/images/{expense_id}", response_model=list[ImageOut])
def list_images(expense_id: str, session: SessionDep, ctx: ContextDep, settings: SettingsDep):
    return [_image_out(image, settings) for image in receipts.list_receipts(session, ctx, expense_id)]


@router.post("/upload", response_model=ImageOut, status_code=status.HTTP_201_CREATED)
def upload_image(
    file: Annotated[UploadFile, File()],
    expense_id: Annotated[str, Form(alias="expenseId")],
    response: Response,
    session: SessionDep,
    ctx: ContextDep,
    settings: SettingsDep,
):
    # One byte past the limit is enough to know the upload is too large.
    data = file.file.read(settings.max_upload_bytes + 1)
    upload = receipts.Upload(filename=file.filename or "", content_type=file.content_type or "", data=data)
    image = receipts.upload_receipt(
        session, ctx, expense_id, upload, bucket=settings.bucket_name, max_bytes=settings.max_upload_bytes
    )
    _invalidates(response, Mutation.UPLOAD_RECEIPT, image.expense_id)
    return _image_out(image, settings)


@router.delete("/images/{image_id}", response_model=DeletedOut)
def delete_image(image_id: str, response: Response, session: SessionDep, ctx: ContextDep, settings: SettingsDep):
    image = receipts.delete_receipt(session, ctx, image_id, bucket=settings.bucket_name)
    _invalidates(response, Mutation.DELETE_RECEIPT, image.expense_id)
    return DeletedOut(deleted=image_id)


# ---------- Reimbursements ----------
# The fixed paths must be registered before /reimbursements/{expense_id}.


@router.get("/reimbursements/summary/overall")
def reimbursement_summary(
    session: SessionDep,
    ctx: ContextDep,
    from_: Annotated[str | None, Query(alias="from")] = None,
    to: Annotated[str | None, Query()] = None,
    year: Annotated[str | None, Query()] = None,
):
    date_range = parse_range(from_, to, year)
    return summarize(session, ctx, date_range).to_dict()


@router.get("/reimbursements/export")
def export_reimbursements(
    session: SessionDep,
    ctx: ContextDep,
    from_: Annotated[str | None, Query(alias="from")] = None,
    to: Annotated[str | None, Query()] = None,
    year: Annotated[str | None, Query()] = None,
):
    date_range = parse_range(from_, to, year)
    summary = summarize(session, ctx, date_range)
    filename = export_filename(date_range)
    logger.info("Exporting %d rows to %s for %s", len(summary.by_expense), filename, ctx.user_id)
    return StreamingResponse(
        iter_csv(summary),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/reimbursements/{expense_id}", response_model=list[ReimbursementOut])
def list_reimbursements(expense_id: str, session: SessionDep, ctx: ContextDep):
    return ledger.list_reimbursements(session, ctx, expense_id)


@router.post("/reimbursements", response_model=ReimbursementOut, status_code=status.HTTP_201_CREATED)
def add_reimbursement(payload: ReimbursementIn, response: Response, session: SessionDep, ctx: ContextDep):
    reimbursement = ledger.add_reimbursement(
        session, ctx, payload.expense_id, payload.amount, method=payload.method, notes=payload.notes
    )
    _invalidates(response, Mutation.ADD_REIMBURSEMENT, reimbursement.expense_id)
    return reimbursement


@router.delete("/reimbursements/{reimbursement_id}", response_model=ReimbursementDeletedOut)
def delete_reimbursement(reimbursement_id: str, response: Response, session: SessionDep, ctx: ContextDep):
    expense = ledger.delete_reimbursement(session, ctx, reimbursement_id)
    _invalidates(response, Mutation.DELETE_REIMBURSEMENT, expense.id)
    return ReimbursementDeletedOut(deleted=reimbursement_id, expense=ExpenseOut.model_validate(expense))


# ---------- Error handling ----------


async def _ledger_error(request: Request, exc: LedgerError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "form"))
        problems.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    message = "; ".join(problems) or "Invalid request"
    return JSONResponse(status_code=400, content={"error": "VALIDATION_ERROR", "message": message})


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "INTERNAL_ERROR", "message": "Internal error"})


def create_app(settings: Settings | None = None, engine: Engine | None = None) -> FastAPI:
    """Build the application. Creates tables and seeds categories on the way."""
    settings = settings or get_settings()
    logging.getLogger("hsa_reimbursements").setLevel(settings.log_level)

    engine = engine or make_engine(settings.database_url)
    create_tables(engine)

    app = FastAPI(title="HSA Reimbursement Ledger")
    app.state.settings = settings
    app.state.session_factory = make_session_factory(engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[INVALIDATE_HEADER, "Content-Disposition"],
    )
    app.add_exception_handler(LedgerError, _ledger_error)
    app.add_exception_handler(RequestValidationError, _request_validation_error)
    app.add_exception_handler(Exception, _unhandled_error)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(router, prefix=settings.api_prefix)
    return app
