import logging

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from rifafacil.auth import (
    ADMIN_PASSWORD_HEADER,
    AdminNotConfiguredError,
    verify_admin_password,
)
from rifafacil.config import Settings
from rifafacil.database import get_db, init_db, make_engine, make_session_factory
from rifafacil.models import Raffle
from rifafacil.notifications import send_admin_notification
from rifafacil.raffles import (
    InvalidWinnerError,
    PayeeKeyTooLongError,
    PaymentPayloadError,
    RaffleNotFoundError,
    TicketNotFoundError,
    TicketUnavailableError,
    confirm_payment,
    create_raffle,
    delete_raffle,
    get_raffle,
    list_raffles,
    quote_checkout,
    release_expired_reservations,
    release_ticket,
    reservation_message,
    reserve_tickets,
    set_winner,
    to_detail,
    to_summary,
    update_raffle,
)
from rifafacil.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    LoginRequest,
    RaffleCreate,
    RaffleDetail,
    RaffleSummary,
    RaffleUpdate,
    ReservationRequest,
    ReservationResponse,
    TicketOut,
    WinnerRequest,
)
from rifafacil.state_machine import InvalidTransitionError

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def require_admin(request: Request) -> None:
    settings = get_settings(request)
    provided = request.headers.get(ADMIN_PASSWORD_HEADER, "")
    try:
        verify_admin_password(settings.admin_password, provided)
    except ValueError as exc:
        logger.warning("Admin authentication failed: %s", exc)
        raise HTTPException(status_code=401, detail=str(exc))


def _format_validation_errors(errors) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in e.get('loc', ()))}: {e.get('msg', '')}"
        for e in errors
    )


def _load_raffle(db: Session, raffle_id: str, settings: Settings) -> Raffle:
    raffle = get_raffle(db, raffle_id)
    release_expired_reservations(db, raffle, settings.reservation_timeout_seconds)
    return raffle


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    application = FastAPI(title="RifaFacil")
    application.state.settings = settings

    engine = make_engine(settings.database_url)
    init_db(engine)
    application.state.session_factory = make_session_factory(engine)

    # ── Error mapping ──────────────────────────────────────────────────────────

    @application.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        # 400 for missing fields, 422 for type and constraint errors
        errors = exc.errors()
        has_missing = any(e.get("type") == "missing" for e in errors)
        status_code = 400 if has_missing else 422
        return JSONResponse(
            status_code=status_code,
            content={"error": _format_validation_errors(errors)},
        )

    @application.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @application.exception_handler(AdminNotConfiguredError)
    async def admin_not_configured(request: Request, exc: AdminNotConfiguredError) -> JSONResponse:
        logger.error("Admin endpoint called but no admin password is configured")
        return JSONResponse(status_code=503, content={"error": str(exc)})

    @application.exception_handler(RaffleNotFoundError)
    @application.exception_handler(TicketNotFoundError)
    async def not_found(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @application.exception_handler(TicketUnavailableError)
    async def unavailable(request: Request, exc: TicketUnavailableError) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={"error": str(exc), "unavailable": exc.numbers},
        )

    @application.exception_handler(InvalidTransitionError)
    async def invalid_transition(request: Request, exc: InvalidTransitionError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"error": str(exc)})

    @application.exception_handler(InvalidWinnerError)
    async def invalid_winner(request: Request, exc: InvalidWinnerError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"error": str(exc)})

    @application.exception_handler(PayeeKeyTooLongError)
    @application.exception_handler(PaymentPayloadError)
    async def unpayable(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=422, content={"error": str(exc)})

    # ── Public ─────────────────────────────────────────────────────────────────

    @application.get("/raffles", response_model=list[RaffleSummary])
    def list_all(
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
    ) -> list[RaffleSummary]:
        raffles = list_raffles(db)
        for raffle in raffles:
            release_expired_reservations(db, raffle, settings.reservation_timeout_seconds)
        return [to_summary(raffle) for raffle in raffles]

    @application.get("/raffles/{raffle_id}", response_model=RaffleDetail)
    def read_raffle(
        raffle_id: str,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
    ) -> RaffleDetail:
        return to_detail(_load_raffle(db, raffle_id, settings))

    @application.post("/raffles/{raffle_id}/checkout", response_model=CheckoutResponse)
    def checkout(
        raffle_id: str,
        body: CheckoutRequest,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
    ) -> CheckoutResponse:
        raffle = _load_raffle(db, raffle_id, settings)
        return quote_checkout(raffle, body.numbers, settings)

    @application.post(
        "/raffles/{raffle_id}/reservations",
        response_model=ReservationResponse,
        status_code=201,
    )
    def reserve(
        raffle_id: str,
        body: ReservationRequest,
        background_tasks: BackgroundTasks,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
    ) -> ReservationResponse:
        raffle = _load_raffle(db, raffle_id, settings)
        reservation = reserve_tickets(db, raffle, body, settings)
        background_tasks.add_task(
            send_admin_notification,
            settings.notification_url,
            reservation_message(raffle.name, reservation),
        )
        return reservation

    # ── Administrator ──────────────────────────────────────────────────────────

    @application.post("/admin/login")
    def login(body: LoginRequest, settings: Settings = Depends(get_settings)) -> dict:
        try:
            verify_admin_password(settings.admin_password, body.password)
        except ValueError as exc:
            logger.warning("Admin login rejected: %s", exc)
            return JSONResponse(status_code=401, content={"error": str(exc)})
        return {"authenticated": True}

    admin = [Depends(require_admin)]

    @application.post(
        "/raffles", response_model=RaffleDetail, status_code=201, dependencies=admin,
    )
    def create(
        body: RaffleCreate,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
    ) -> RaffleDetail:
        return to_detail(create_raffle(db, body, settings.pix_scheme))

    @application.patch("/raffles/{raffle_id}", response_model=RaffleDetail, dependencies=admin)
    def edit(
        raffle_id: str,
        body: RaffleUpdate,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
    ) -> RaffleDetail:
        raffle = get_raffle(db, raffle_id)
        return to_detail(update_raffle(db, raffle, body, settings.pix_scheme))

    @application.delete("/raffles/{raffle_id}", dependencies=admin)
    def delete(raffle_id: str, db: Session = Depends(get_db)) -> dict:
        delete_raffle(db, get_raffle(db, raffle_id))
        return {"status": "deleted", "raffle_id": raffle_id}

    @application.post(
        "/raffles/{raffle_id}/tickets/{number}/confirm",
        response_model=TicketOut,
        dependencies=admin,
    )
    def confirm(raffle_id: str, number: int, db: Session = Depends(get_db)) -> TicketOut:
        ticket = confirm_payment(db, get_raffle(db, raffle_id), number)
        return TicketOut.model_validate(ticket)

    @application.post(
        "/raffles/{raffle_id}/tickets/{number}/release",
        response_model=TicketOut,
        dependencies=admin,
    )
    def release(raffle_id: str, number: int, db: Session = Depends(get_db)) -> TicketOut:
        ticket = release_ticket(db, get_raffle(db, raffle_id), number)
        return TicketOut.model_validate(ticket)

    @application.post("/raffles/{raffle_id}/winner", response_model=RaffleSummary, dependencies=admin)
    def winner(
        raffle_id: str,
        body: WinnerRequest,
        db: Session = Depends(get_db),
    ) -> RaffleSummary:
        return to_summary(set_winner(db, get_raffle(db, raffle_id), body.number))

    return application
