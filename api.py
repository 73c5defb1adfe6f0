import logging
import os
from contextlib import asynccontextmanager
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from config import settings
from lending.admin import AuthState
from lending.database import get_db_connection, utcnow
from lending.errors import ExternalServiceError, InconsistentStateError, ValidationError
from lending.library import Library
from lending.results import FailureCode, OperationResult

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

# LIBRARY_DB_FILE lets tests point a freshly reloaded module at their own file
library = Library(os.environ.get("LIBRARY_DB_FILE"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{settings.app_name} {settings.app_version} starting ({settings.environment})")
    yield


app = FastAPI(title=f"{settings.app_name} API", version=settings.app_version, lifespan=lifespan)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error mapping ---
@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(InconsistentStateError)
async def inconsistent_state_handler(request: Request, exc: InconsistentStateError):
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "code": "inconsistent_state", "book_id": exc.book_id},
    )


@app.exception_handler(ExternalServiceError)
async def external_service_handler(request: Request, exc: ExternalServiceError):
    logger.error(f"Service unavailable on {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


AUTH_FAILURES = {FailureCode.NOT_AUTHORIZED, FailureCode.INVALID_CREDENTIALS}


def _raise_for_failure(result) -> None:
    """Turn a failed result into the matching HTTP error."""
    if result.success:
        return
    if result.code == FailureCode.NOT_FOUND:
        status = 404
    elif result.code in AUTH_FAILURES:
        status = 401
    else:
        status = 409
    raise HTTPException(status_code=status, detail={"code": result.code.value, "message": result.error})


# --- Security ---
admin_token_header = APIKeyHeader(name="X-Admin-Token", auto_error=False)


def get_session(token: Optional[str] = Security(admin_token_header)) -> AuthState:
    return library.auth.load_session(token)


def require_admin(session: AuthState = Depends(get_session)) -> AuthState:
    """Dependency that admits only a valid admin session."""
    if not session.is_admin:
        raise HTTPException(status_code=401, detail="Admin authentication required")
    return session


# --- Models ---
class BookModel(BaseModel):
    id: str
    title: str
    author: str
    isbn: str
    subject: str
    rack_number: str
    total_copies: int
    available_copies: int
    is_available: bool
    published_year: int | None = None
    description: str | None = None
    cover_image_url: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class BookCreateModel(BaseModel):
    title: str
    author: str
    isbn: str
    subject: str
    rack_number: str = Field(description="Shelf code, e.g. A1-01")
    total_copies: int = Field(default=1, ge=1)
    available_copies: int | None = None
    published_year: int | None = None
    description: str | None = None
    cover_image_url: str | None = None


class BookUpdateModel(BaseModel):
    title: str | None = None
    author: str | None = None
    isbn: str | None = None
    subject: str | None = None
    rack_number: str | None = None
    total_copies: int | None = None
    available_copies: int | None = None
    published_year: int | None = None
    description: str | None = None
    cover_image_url: str | None = None


class BookPageModel(BaseModel):
    items: List[BookModel]
    total: int
    page: int
    page_size: int
    total_pages: int


class BorrowRequest(BaseModel):
    borrower_name: str
    due_date: str | None = Field(default=None, description="YYYY-MM-DD or ISO timestamp")
    borrower_email: str | None = None
    borrower_phone: str | None = None
    notes: str | None = None


class LoanModel(BaseModel):
    id: str
    book_id: str
    borrower_name: str
    borrower_email: str | None = None
    borrower_phone: str | None = None
    borrowed_at: str
    due_date: str
    returned_at: str | None = None
    is_overdue: bool
    overdue_days: int
    fine_amount: Decimal
    notes: str | None = None
    issued_by: str | None = None
    reminded_at: str | None = None
    overdue_notified_at: str | None = None
    book: BookModel | None = None


class LoanPageModel(BaseModel):
    items: List[LoanModel]
    total: int
    page: int
    page_size: int
    total_pages: int


class ReservationRequest(BaseModel):
    reserver_name: str
    reserver_email: str | None = None
    reserver_phone: str | None = None


class ReservationModel(BaseModel):
    id: str
    book_id: str
    reserver_name: str
    reserver_email: str | None = None
    reserver_phone: str | None = None
    reserved_at: str
    expires_at: str
    is_fulfilled: bool
    is_cancelled: bool


class PhoneLoginRequest(BaseModel):
    phone_number: str


class PhoneLoginResponse(BaseModel):
    authorized: bool
    needs_setup: bool = False
    admin_id: str | None = None
    error: str | None = None


class SetupRequest(BaseModel):
    phone_number: str
    username: str
    password: str
    name: str


class LoginRequest(BaseModel):
    username: str
    password: str


class AdminProfileModel(BaseModel):
    id: str
    username: str | None = None
    name: str | None = None
    phone_number: str


class AuthResponse(BaseModel):
    token: str
    admin: AdminProfileModel


class SessionModel(BaseModel):
    is_authenticated: bool
    role: str
    user: AdminProfileModel | None = None


class StatsModel(BaseModel):
    total_books: int
    available_books: int
    borrowed_books: int
    overdue_books: int
    total_reservations: int
    active_reservations: int


class SweepResult(BaseModel):
    count: int


class NotificationModel(BaseModel):
    id: int
    type: str
    record_id: str | None = None
    recipient_phone: str | None = None
    recipient_email: str | None = None
    message: str
    created_at: str


def _page_model(page, model, item_model):
    return model(
        items=[item_model(**item.to_dict()) for item in page.items],
        total=page.total,
        page=page.page,
        page_size=page.page_size,
        total_pages=page.total_pages,
    )


def _auth_response(result) -> AuthResponse:
    _raise_for_failure(result)
    return AuthResponse(token=result.token, admin=AdminProfileModel(**result.admin.profile()))


# --- Health ---
@app.get("/health")
def health():
    """Lightweight health check with a quick database probe."""
    db_ok = True
    try:
        conn = get_db_connection()
        conn.execute("SELECT 1")
        conn.close()
    except ExternalServiceError:
        db_ok = False
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": utcnow().isoformat(),
        "db": db_ok,
        "version": settings.app_version,
    }


# --- Catalog ---
@app.get("/books", response_model=BookPageModel)
def get_books(
    q: Optional[str] = Query(None, description="Search query"),
    filter_type: str = Query("all", description="all|title|author|isbn|subject"),
    available_only: bool = Query(False, description="Only books with a copy on the shelf"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
):
    """Search the catalog, newest first."""
    result = library.search_books(q or "", filter_type=filter_type, available_only=available_only,
                                  page=page, page_size=page_size)
    return _page_model(result, BookPageModel, BookModel)


@app.get("/books/{book_id}", response_model=BookModel)
def get_book(book_id: str):
    book = library.get_book(book_id)
    if not book:
        raise HTTPException(status_code=404, detail="Book not found.")
    return BookModel(**book.to_dict())


@app.post("/books", response_model=BookModel, status_code=201)
def add_book(payload: BookCreateModel, session: AuthState = Depends(require_admin)):
    book = library.add_book(**payload.model_dump())
    return BookModel(**book.to_dict())


@app.put("/books/{book_id}", response_model=BookModel)
def update_book(book_id: str, update: BookUpdateModel, session: AuthState = Depends(require_admin)):
    """Partially update a book."""
    book = library.update_book(book_id, **update.model_dump(exclude_none=True))
    if not book:
        raise HTTPException(status_code=404, detail="Book not found.")
    return BookModel(**book.to_dict())


@app.delete("/books/{book_id}")
def delete_book(book_id: str, session: AuthState = Depends(require_admin)):
    _raise_for_failure(library.delete_book(book_id))
    return {"message": "Book removed."}


# --- Lending ---
@app.post("/books/{book_id}/borrow", response_model=LoanModel, status_code=201)
def borrow_book(book_id: str, payload: BorrowRequest, session: AuthState = Depends(require_admin)):
    due_date = payload.due_date or (date.today() + timedelta(days=settings.default_loan_days)).isoformat()
    result: OperationResult = library.borrow_book(
        book_id,
        borrower_name=payload.borrower_name,
        due_date=due_date,
        borrower_email=payload.borrower_email,
        borrower_phone=payload.borrower_phone,
        notes=payload.notes,
        issued_by=session.user.id,
    )
    _raise_for_failure(result)
    return LoanModel(**result.record.to_dict())


@app.post("/loans/{record_id}/return", response_model=LoanModel)
def return_book(record_id: str, session: AuthState = Depends(require_admin)):
    result = library.return_book(record_id)
    _raise_for_failure(result)
    return LoanModel(**result.record.to_dict())


@app.get("/loans/active", response_model=List[LoanModel])
def get_active_loans(session: AuthState = Depends(require_admin)):
    return [LoanModel(**r.to_dict()) for r in library.get_active_loans()]


@app.get("/loans/history", response_model=LoanPageModel)
def get_borrowing_history(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    session: AuthState = Depends(require_admin),
):
    return _page_model(library.get_borrowing_history(page=page, page_size=page_size), LoanPageModel, LoanModel)


# --- Reservations ---
@app.post("/books/{book_id}/reserve", response_model=ReservationModel, status_code=201)
def reserve_book(book_id: str, payload: ReservationRequest):
    result = library.reserve_book(book_id, **payload.model_dump())
    _raise_for_failure(result)
    return ReservationModel(**result.record.to_dict())


@app.get("/reservations", response_model=List[ReservationModel])
def list_reservations(active_only: bool = Query(False), session: AuthState = Depends(require_admin)):
    return [ReservationModel(**r.to_dict()) for r in library.list_reservations(active_only=active_only)]


@app.post("/reservations/{reservation_id}/cancel", response_model=ReservationModel)
def cancel_reservation(reservation_id: str, session: AuthState = Depends(require_admin)):
    result = library.cancel_reservation(reservation_id)
    _raise_for_failure(result)
    return ReservationModel(**result.record.to_dict())


@app.post("/reservations/{reservation_id}/fulfill", response_model=ReservationModel)
def fulfill_reservation(reservation_id: str, session: AuthState = Depends(require_admin)):
    result = library.fulfill_reservation(reservation_id)
    _raise_for_failure(result)
    return ReservationModel(**result.record.to_dict())


# --- Admin auth ---
@app.post("/auth/phone-login", response_model=PhoneLoginResponse)
def phone_login(payload: PhoneLoginRequest):
    """Check whether a phone number may act as an admin and whether setup is pending."""
    lookup = library.auth.phone_login(payload.phone_number)
    if not lookup.authorized:
        raise HTTPException(status_code=401, detail=lookup.error)
    return PhoneLoginResponse(**lookup.__dict__)


@app.post("/auth/setup", response_model=AuthResponse)
def setup_account(payload: SetupRequest):
    return _auth_response(library.auth.setup_account(**payload.model_dump()))


@app.post("/auth/login", response_model=AuthResponse)
def login(payload: LoginRequest):
    return _auth_response(library.auth.login(payload.username, payload.password))


@app.get("/auth/session", response_model=SessionModel)
def get_session_state(session: AuthState = Depends(get_session)):
    return SessionModel(
        is_authenticated=session.is_authenticated,
        role=session.role.value,
        user=AdminProfileModel(**session.user.profile()) if session.user else None,
    )


# --- Admin dashboard and sweeps ---
@app.get("/admin/dashboard", response_model=StatsModel)
def get_dashboard(session: AuthState = Depends(require_admin)):
    return StatsModel(**library.get_dashboard_stats().__dict__)


@app.post("/admin/loans/refresh-overdue", response_model=SweepResult)
def refresh_overdue(session: AuthState = Depends(require_admin)):
    return SweepResult(count=library.refresh_overdue())


@app.post("/admin/notifications/due-reminders", response_model=SweepResult)
def send_due_reminders(session: AuthState = Depends(require_admin)):
    return SweepResult(count=library.notifications.send_due_reminders())


@app.post("/admin/notifications/overdue-notices", response_model=SweepResult)
def send_overdue_notices(session: AuthState = Depends(require_admin)):
    return SweepResult(count=library.notifications.send_overdue_notices())


@app.get("/admin/notifications", response_model=List[NotificationModel])
def list_notifications(limit: int = Query(100, ge=1, le=500), session: AuthState = Depends(require_admin)):
    return [NotificationModel(**n.to_dict()) for n in library.notifications.list_notifications(limit=limit)]
