import logging
import os
import threading
import time
from datetime import date, datetime

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, ValidationError
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.middleware.sessions import SessionMiddleware

load_dotenv()

from db.base import Base
from db.deps import get_rental_db
from db.session import engine_rental
from schemas.customers import CustomerUpsert
from schemas.inventory import ClothingItemUpsert
from schemas.rentals import CreateRentalDto, RentalLineItemDto, ReturnRequest, StatusChangeRequest
from services.customer_service import build_customer_fields, serialize_customer
from services.inventory_service import build_item_fields, serialize_item
from services.pagination import DEFAULT_PAGE_SIZE, build_page, page_range
from services.rental_errors import (
    PersistenceError,
    RentalError,
    RentalNotFound,
    RentalPartialFailure,
    RentalValidationError,
)
from services.rental_lifecycle import ACTIVE
from services.rental_service import RentalEngine, serialize_rental
from services.rental_store import RentalStore
from services.user_access_service import (
    SessionAuth,
    create_account,
    create_session,
    get_session,
    remove_session,
    request_password_reset,
    reset_password,
    verify_password,
)

app = FastAPI(title="Clothing Rental API")


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in str(raw).split(",") if item.strip()]


def _env_flag(name: str, default: str = "false") -> bool:
    return str(os.environ.get(name, default)).strip().lower() in {"1", "true", "yes", "on"}


_CORS_ALLOW_ORIGINS = _parse_csv_env(
    "CORS_ALLOW_ORIGINS",
    "http://127.0.0.1,http://localhost,http://127.0.0.1:5173,http://localhost:5173",
)
_CORS_ALLOW_CREDENTIALS = _env_flag("CORS_ALLOW_CREDENTIALS", "true")
if "*" in _CORS_ALLOW_ORIGINS:
    # Browsers reject wildcard origins with credentials.
    _CORS_ALLOW_CREDENTIALS = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ALLOW_ORIGINS,
    allow_credentials=_CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(
    SessionMiddleware,
    secret_key=(os.environ.get("SESSION_SIGNING_SECRET") or "").strip(),
    session_cookie="clothing_rental_session",
    same_site="lax",
    https_only=False,
)

if _env_flag("CLOTHING_RENTAL_CREATE_SCHEMA"):
    Base.metadata.create_all(engine_rental)

AUTH_ATTEMPT_WINDOW_SECONDS = int(os.environ.get("AUTH_ATTEMPT_WINDOW_SECONDS") or "300")
AUTH_MAX_ATTEMPTS_PER_IP = int(os.environ.get("AUTH_MAX_ATTEMPTS_PER_IP") or "50")
AUTH_MAX_ATTEMPTS_PER_ACCOUNT = int(os.environ.get("AUTH_MAX_ATTEMPTS_PER_ACCOUNT") or "8")
AUTH_LOCKOUT_SECONDS = int(os.environ.get("AUTH_LOCKOUT_SECONDS") or "900")
# Development only: there is no mail delivery, so the token can be handed back directly.
PASSWORD_RESET_EXPOSE_TOKEN = _env_flag("PASSWORD_RESET_EXPOSE_TOKEN")
AUTH_LOGGER = logging.getLogger("clothing_rental.auth")
_AUTH_GUARD_LOCK = threading.Lock()
_AUTH_ATTEMPTS_BY_IP: dict[str, list[float]] = {}
_AUTH_ATTEMPTS_BY_ACCOUNT: dict[str, list[float]] = {}
_AUTH_LOCKOUT_UNTIL_BY_ACCOUNT: dict[str, float] = {}


class AuthCredentials(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str
    password: str


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    token: str
    password: str


def _get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        candidate = forwarded.split(",")[0].strip()
        if candidate:
            return candidate
    return request.client.host if request.client and request.client.host else "unknown"


def _prune_attempts(attempts: list[float], now_ts: float) -> list[float]:
    cutoff = now_ts - max(AUTH_ATTEMPT_WINDOW_SECONDS, 1)
    return [ts for ts in attempts if ts >= cutoff]


def _check_login_guard(client_ip: str, account_key: str) -> int | None:
    now_ts = time.time()
    with _AUTH_GUARD_LOCK:
        lockout_until = _AUTH_LOCKOUT_UNTIL_BY_ACCOUNT.get(account_key)
        if lockout_until and lockout_until > now_ts:
            return max(1, int(lockout_until - now_ts))
        if lockout_until and lockout_until <= now_ts:
            _AUTH_LOCKOUT_UNTIL_BY_ACCOUNT.pop(account_key, None)

        ip_attempts = _prune_attempts(_AUTH_ATTEMPTS_BY_IP.get(client_ip, []), now_ts)
        account_attempts = _prune_attempts(_AUTH_ATTEMPTS_BY_ACCOUNT.get(account_key, []), now_ts)
        _AUTH_ATTEMPTS_BY_IP[client_ip] = ip_attempts
        _AUTH_ATTEMPTS_BY_ACCOUNT[account_key] = account_attempts

        if len(ip_attempts) >= max(AUTH_MAX_ATTEMPTS_PER_IP, 1):
            oldest = ip_attempts[0]
            return max(1, int((oldest + AUTH_ATTEMPT_WINDOW_SECONDS) - now_ts))
        if len(account_attempts) >= max(AUTH_MAX_ATTEMPTS_PER_ACCOUNT, 1):
            _AUTH_LOCKOUT_UNTIL_BY_ACCOUNT[account_key] = now_ts + max(AUTH_LOCKOUT_SECONDS, 1)
            return max(AUTH_LOCKOUT_SECONDS, 1)
    return None


def _record_login_failure(client_ip: str, account_key: str) -> None:
    now_ts = time.time()
    with _AUTH_GUARD_LOCK:
        ip_attempts = _prune_attempts(_AUTH_ATTEMPTS_BY_IP.get(client_ip, []), now_ts)
        account_attempts = _prune_attempts(_AUTH_ATTEMPTS_BY_ACCOUNT.get(account_key, []), now_ts)
        ip_attempts.append(now_ts)
        account_attempts.append(now_ts)
        _AUTH_ATTEMPTS_BY_IP[client_ip] = ip_attempts
        _AUTH_ATTEMPTS_BY_ACCOUNT[account_key] = account_attempts
        if len(account_attempts) >= max(AUTH_MAX_ATTEMPTS_PER_ACCOUNT, 1):
            _AUTH_LOCKOUT_UNTIL_BY_ACCOUNT[account_key] = now_ts + max(AUTH_LOCKOUT_SECONDS, 1)


def _record_login_success(account_key: str) -> None:
    with _AUTH_GUARD_LOCK:
        _AUTH_ATTEMPTS_BY_ACCOUNT.pop(account_key, None)
        _AUTH_LOCKOUT_UNTIL_BY_ACCOUNT.pop(account_key, None)


def _get_active_session(request: Request, session_token: str | None) -> dict | None:
    session_from_cookie = request.session.get("user")
    if isinstance(session_from_cookie, dict):
        return dict(session_from_cookie)
    session_from_token = get_session(session_token)
    if session_from_token:
        request.session["user"] = dict(session_from_token)
        return dict(session_from_token)
    return None


def _require_session_or_401(request: Request, session_token: str | None) -> dict:
    session = _get_active_session(request, session_token)
    if not session:
        raise HTTPException(status_code=401, detail="Not logged in.")
    return session


def _to_http_error(exc: RentalError) -> HTTPException:
    if isinstance(exc, RentalValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, RentalNotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, RentalPartialFailure):
        return HTTPException(
            status_code=500,
            detail={
                "message": str(exc),
                "failedStep": exc.failed_step,
                "completedSteps": exc.completed_steps,
            },
        )
    if isinstance(exc, PersistenceError):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def get_rental_store(db: Session = Depends(get_rental_db)) -> RentalStore:
    return RentalStore(db)


def _engine(store: RentalStore, session: dict | None) -> RentalEngine:
    return RentalEngine(store, SessionAuth(session))


@app.get("/healthz")
def healthcheck():
    return {"status": "ok"}


@app.get("/api/healthz")
def healthcheck_api(db: Session = Depends(get_rental_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"db_unavailable: {exc}") from exc


# Auth


@app.post("/api/auth/signup")
def auth_signup(payload: AuthCredentials):
    try:
        account = create_account(payload.email, payload.password)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    AUTH_LOGGER.info("Account created user_id=%s", account["userID"])
    return account


@app.post("/api/auth/login")
def auth_login(payload: dict, request: Request):
    client_ip = _get_client_ip(request)
    try:
        parsed = AuthCredentials.model_validate(payload)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid login request.")

    email = parsed.email.strip().lower()
    account_key = f"user:{email}"
    retry_after = _check_login_guard(client_ip, account_key)
    if retry_after is not None:
        AUTH_LOGGER.warning("Login throttled ip=%s key=%s retry_after=%s", client_ip, account_key, retry_after)
        raise HTTPException(
            status_code=429,
            detail="Too many login attempts. Please try again later.",
            headers={"Retry-After": str(retry_after)},
        )

    account = verify_password(email, parsed.password)
    if not account:
        _record_login_failure(client_ip, account_key)
        AUTH_LOGGER.warning("Login failed ip=%s key=%s reason=invalid_credentials", client_ip, account_key)
        raise HTTPException(status_code=401, detail="Invalid credentials.")

    session_payload = {"userID": account["userID"], "email": account["email"]}
    token = create_session(session_payload)
    request.session["user"] = dict(session_payload)
    _record_login_success(account_key)
    AUTH_LOGGER.info("Login success ip=%s key=%s user_id=%s", client_ip, account_key, account["userID"])
    return {"sessionToken": token, "user": session_payload}


@app.post("/api/auth/logout")
def auth_logout(request: Request, x_session_token: str | None = Header(None, alias="X-Session-Token")):
    request.session.clear()
    remove_session(x_session_token)
    return {"ok": True}


@app.get("/api/auth/me")
def auth_me(request: Request, x_session_token: str | None = Header(None, alias="X-Session-Token")):
    session = _require_session_or_401(request, x_session_token)
    return {"user": session}


@app.post("/api/auth/forgot-password")
def auth_forgot_password(payload: ForgotPasswordRequest):
    token = request_password_reset(payload.email)
    if token:
        AUTH_LOGGER.info("Password reset requested email=%s", payload.email.strip().lower())
    # Same answer whether or not the account exists.
    response = {"ok": True}
    if token and PASSWORD_RESET_EXPOSE_TOKEN:
        response["resetToken"] = token
    return response


@app.post("/api/auth/reset-password")
def auth_reset_password(payload: ResetPasswordRequest):
    try:
        changed = reset_password(payload.token, payload.password)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not changed:
        raise HTTPException(status_code=400, detail="Reset link is invalid or has expired.")
    return {"ok": True}


# Inventory


@app.get("/api/inventory")
def list_inventory(
    request: Request,
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, alias="pageSize"),
    available: bool | None = Query(None),
    category: str | None = Query(None),
    size: str | None = Query(None),
    search: str | None = Query(None),
    order_by: str = Query("name", alias="orderBy"),
    descending: bool = Query(False),
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(request, x_session_token)
    filters = {"available": available, "category": category, "size": size, "search": search}
    try:
        items, total = store.list_clothing_items(filters, order_by, descending, page_range(page, page_size))
    except RentalError as exc:
        raise _to_http_error(exc) from exc
    return build_page([serialize_item(item) for item in items], total, page, page_size)


@app.get("/api/inventory/{item_id}")
def get_inventory_item(
    item_id: int,
    request: Request,
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(request, x_session_token)
    try:
        item = store.get_clothing_item(item_id)
    except RentalError as exc:
        raise _to_http_error(exc) from exc
    if not item:
        raise HTTPException(status_code=404, detail="Clothing item not found")
    return serialize_item(item)


@app.post("/api/inventory")
def create_inventory_item(
    payload: ClothingItemUpsert,
    request: Request,
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(request, x_session_token)
    try:
        fields = build_item_fields(payload)
        fields["available"] = True
        item = store.create_clothing_item(fields)
    except RentalError as exc:
        raise _to_http_error(exc) from exc
    return serialize_item(item)


@app.put("/api/inventory/{item_id}")
def update_inventory_item(
    item_id: int,
    payload: ClothingItemUpsert,
    request: Request,
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(request, x_session_token)
    try:
        item = store.update_clothing_item(item_id, build_item_fields(payload, partial=True))
    except RentalError as exc:
        raise _to_http_error(exc) from exc
    if not item:
        raise HTTPException(status_code=404, detail="Clothing item not found")
    return serialize_item(item)


@app.delete("/api/inventory/{item_id}")
def delete_inventory_item(
    item_id: int,
    request: Request,
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(request, x_session_token)
    try:
        deleted = store.delete_clothing_item(item_id)
    except RentalError as exc:
        raise _to_http_error(exc) from exc
    if not deleted:
        raise HTTPException(status_code=404, detail="Clothing item not found")
    return {"message": "Deleted"}


# Customers


@app.get("/api/customers")
def list_customers(
    request: Request,
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, alias="pageSize"),
    search: str | None = Query(None),
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(request, x_session_token)
    try:
        customers, total = store.list_customers(range_=page_range(page, page_size), search=search)
    except RentalError as exc:
        raise _to_http_error(exc) from exc
    return build_page([serialize_customer(customer) for customer in customers], total, page, page_size)


@app.get("/api/customers/{customer_id}")
def get_customer(
    customer_id: int,
    request: Request,
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(request, x_session_token)
    try:
        customer = store.get_customer(customer_id)
    except RentalError as exc:
        raise _to_http_error(exc) from exc
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return serialize_customer(customer)


@app.post("/api/customers")
def create_customer(
    payload: CustomerUpsert,
    request: Request,
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_session_or_401(request, x_session_token)
    owner_id = SessionAuth(session).get_current_user_id()
    if not owner_id:
        raise HTTPException(status_code=401, detail="You must be logged in to add a customer.")
    try:
        customer = store.create_customer(build_customer_fields(payload), owner_id)
    except RentalError as exc:
        raise _to_http_error(exc) from exc
    return serialize_customer(customer)


@app.put("/api/customers/{customer_id}")
def update_customer(
    customer_id: int,
    payload: CustomerUpsert,
    request: Request,
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(request, x_session_token)
    try:
        customer = store.update_customer(customer_id, build_customer_fields(payload, partial=True))
    except RentalError as exc:
        raise _to_http_error(exc) from exc
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return serialize_customer(customer)


# Rentals


@app.get("/api/rentals")
def list_rentals(
    request: Request,
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, alias="pageSize"),
    status: str | None = Query(None),
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(request, x_session_token)
    try:
        rentals, total = store.list_rentals_with_relations(page_range(page, page_size), status=status)
    except RentalError as exc:
        raise _to_http_error(exc) from exc
    return build_page([serialize_rental(rental) for rental in rentals], total, page, page_size)


@app.get("/api/rentals/{rental_id}")
def get_rental(
    rental_id: int,
    request: Request,
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_session_or_401(request, x_session_token)
    try:
        rental = _engine(store, session).get_rental(rental_id)
    except RentalError as exc:
        raise _to_http_error(exc) from exc
    return serialize_rental(rental)


@app.post("/api/rentals/quote")
def quote_rental(
    payload: CreateRentalDto,
    request: Request,
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_session_or_401(request, x_session_token)
    try:
        quote = _engine(store, session).quote(payload)
    except RentalError as exc:
        raise _to_http_error(exc) from exc
    return quote.as_dict()


@app.post("/api/rentals/line-items/check")
def check_rental_line_item(
    payload: RentalLineItemDto,
    request: Request,
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_session_or_401(request, x_session_token)
    try:
        line = _engine(store, session).validate_line_item(payload)
    except RentalError as exc:
        raise _to_http_error(exc) from exc
    item = store.get_clothing_item(line["clothing_item_id"])
    if not item:
        raise HTTPException(status_code=400, detail=f"Clothing item {line['clothing_item_id']} not found.")
    return {
        "clothingItemID": item.id,
        "price": float(line["price"]),
        "notes": line["notes"],
        "clothingItem": {"name": item.name, "size": item.size, "available": bool(item.available)},
    }


@app.post("/api/rentals")
def create_rental(
    payload: CreateRentalDto,
    request: Request,
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_session_or_401(request, x_session_token)
    try:
        rental = _engine(store, session).create_rental(payload)
    except RentalError as exc:
        raise _to_http_error(exc) from exc
    return serialize_rental(rental)


@app.post("/api/rentals/{rental_id}/status")
def change_rental_status(
    rental_id: int,
    payload: StatusChangeRequest,
    request: Request,
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_session_or_401(request, x_session_token)
    try:
        rental = _engine(store, session).change_status(rental_id, payload.status)
    except RentalError as exc:
        raise _to_http_error(exc) from exc
    return serialize_rental(rental)


@app.post("/api/rentals/{rental_id}/return")
def return_rental(
    rental_id: int,
    payload: ReturnRequest,
    request: Request,
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_session_or_401(request, x_session_token)
    try:
        rental = _engine(store, session).return_rental(
            rental_id,
            payload.returnCondition,
            payload.returnNotes,
            payload.additionalFees,
        )
    except RentalError as exc:
        raise _to_http_error(exc) from exc
    return serialize_rental(rental)


@app.delete("/api/rentals/{rental_id}")
def delete_rental(
    rental_id: int,
    request: Request,
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    session = _require_session_or_401(request, x_session_token)
    try:
        _engine(store, session).delete_rental(rental_id)
    except RentalError as exc:
        raise _to_http_error(exc) from exc
    return {"message": "Deleted"}


# Dashboard and reports


@app.get("/api/dashboard/stats")
def dashboard_stats(
    request: Request,
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(request, x_session_token)
    first_of_month = datetime.combine(date.today().replace(day=1), datetime.min.time())
    try:
        return {
            "activeRentals": store.count_rentals(status=ACTIVE),
            "totalInventory": store.count_clothing_items(),
            "totalCustomers": store.count_customers(),
            "rentalsThisMonth": store.count_rentals(created_since=first_of_month),
        }
    except RentalError as exc:
        raise _to_http_error(exc) from exc


@app.get("/api/reports/monthly-revenue")
def report_monthly_revenue(
    request: Request,
    year: int | None = Query(None),
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(request, x_session_token)
    target_year = year or date.today().year
    try:
        rows = store.monthly_revenue(target_year)
    except RentalError as exc:
        raise _to_http_error(exc) from exc
    return {
        "year": target_year,
        "months": [
            {"month": row["month"], "revenue": float(row["revenue"]), "rentals": row["rentals"]}
            for row in rows
        ],
    }


@app.get("/api/reports/status-counts")
def report_status_counts(
    request: Request,
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(request, x_session_token)
    try:
        return store.rental_status_counts()
    except RentalError as exc:
        raise _to_http_error(exc) from exc


@app.get("/api/reports/top-customers")
def report_top_customers(
    request: Request,
    limit: int = Query(5, ge=1, le=50),
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(request, x_session_token)
    try:
        rows = store.top_customers(limit)
    except RentalError as exc:
        raise _to_http_error(exc) from exc
    return [dict(row, revenue=float(row["revenue"])) for row in rows]


@app.get("/api/reports/top-items")
def report_top_items(
    request: Request,
    limit: int = Query(5, ge=1, le=50),
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(request, x_session_token)
    try:
        return store.top_items(limit)
    except RentalError as exc:
        raise _to_http_error(exc) from exc


@app.get("/api/reports/availability-mismatches")
def report_availability_mismatches(
    request: Request,
    store: RentalStore = Depends(get_rental_store),
    x_session_token: str | None = Header(None, alias="X-Session-Token"),
):
    _require_session_or_401(request, x_session_token)
    try:
        return store.find_availability_mismatches()
    except RentalError as exc:
        raise _to_http_error(exc) from exc
