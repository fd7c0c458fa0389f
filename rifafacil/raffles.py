import logging
import time
from decimal import ROUND_HALF_UP, Decimal

from pydantic import ValidationError
from sqlalchemy.orm import Session

from rifafacil.brcode import PayloadBuilder, PayloadRequest, PixScheme
from rifafacil.config import Settings
from rifafacil.models import Raffle, Ticket, TicketStatus
from rifafacil.qr import qr_code_url
from rifafacil.schemas import (
    CheckoutResponse,
    RaffleCreate,
    RaffleDetail,
    RaffleStats,
    RaffleSummary,
    RaffleUpdate,
    ReservationRequest,
    ReservationResponse,
    TicketOut,
)
from rifafacil.state_machine import apply_transition

logger = logging.getLogger(__name__)

CENTS = Decimal(100)


class RaffleNotFoundError(Exception):
    def __init__(self, raffle_id: str) -> None:
        super().__init__(f"Raffle '{raffle_id}' not found")
        self.raffle_id = raffle_id


class TicketNotFoundError(Exception):
    def __init__(self, raffle_id: str, numbers: list[int]) -> None:
        joined = ", ".join(str(n) for n in numbers)
        super().__init__(f"Tickets {joined} do not exist in raffle '{raffle_id}'")
        self.numbers = numbers


class TicketUnavailableError(Exception):
    def __init__(self, numbers: list[int]) -> None:
        joined = ", ".join(str(n) for n in numbers)
        super().__init__(f"Tickets {joined} are no longer available")
        self.numbers = numbers


class InvalidWinnerError(Exception):
    """Winning number outside 1..total_tickets."""


class PayeeKeyTooLongError(Exception):
    def __init__(self, length: int, limit: int) -> None:
        super().__init__(
            f"Pix key has {length} characters; the payment scheme allows at most {limit}"
        )
        self.length = length
        self.limit = limit


class PaymentPayloadError(Exception):
    """The raffle's data cannot be encoded as a Pix payload."""


def price_to_cents(price: Decimal) -> int:
    return int((price * CENTS).to_integral_value(rounding=ROUND_HALF_UP))


def cents_to_price(cents: int) -> Decimal:
    return (Decimal(cents) / CENTS).quantize(Decimal("0.01"))


def check_payee_key(pix_key: str, scheme: PixScheme | None = None) -> None:
    limit = (scheme or PixScheme()).max_payee_key_length
    if len(pix_key) > limit:
        raise PayeeKeyTooLongError(len(pix_key), limit)


# ── Raffle records ─────────────────────────────────────────────────────────────

def create_raffle(db: Session, data: RaffleCreate, scheme: PixScheme | None = None) -> Raffle:
    check_payee_key(data.pix_key, scheme)
    raffle = Raffle(
        name=data.name,
        description=data.description,
        prize=data.prize,
        image_url=data.image_url,
        ticket_price_cents=price_to_cents(data.ticket_price),
        total_tickets=data.total_tickets,
        draw_date=data.draw_date,
        pix_key=data.pix_key,
    )
    raffle.tickets = [
        Ticket(number=number, status=TicketStatus.AVAILABLE)
        for number in range(1, data.total_tickets + 1)
    ]
    db.add(raffle)
    db.commit()
    db.refresh(raffle)
    logger.info("Created raffle %s with %d tickets", raffle.id, raffle.total_tickets)
    return raffle


def get_raffle(db: Session, raffle_id: str) -> Raffle:
    raffle = db.get(Raffle, raffle_id)
    if raffle is None:
        raise RaffleNotFoundError(raffle_id)
    return raffle


def list_raffles(db: Session) -> list[Raffle]:
    return db.query(Raffle).order_by(Raffle.created_at.desc()).all()


def update_raffle(
    db: Session,
    raffle: Raffle,
    data: RaffleUpdate,
    scheme: PixScheme | None = None,
) -> Raffle:
    """Apply the fields present in data. The ticket count never changes."""
    changes = data.model_dump(exclude_unset=True)
    if "pix_key" in changes:
        check_payee_key(changes["pix_key"], scheme)
    if "ticket_price" in changes:
        raffle.ticket_price_cents = price_to_cents(changes.pop("ticket_price"))
    for key, value in changes.items():
        setattr(raffle, key, value)
    db.commit()
    db.refresh(raffle)
    logger.info("Updated raffle %s", raffle.id)
    return raffle


def delete_raffle(db: Session, raffle: Raffle) -> None:
    raffle_id = raffle.id
    db.delete(raffle)
    db.commit()
    logger.info("Deleted raffle %s", raffle_id)


def release_expired_reservations(
    db: Session,
    raffle: Raffle,
    timeout_seconds: int,
    now: float | None = None,
) -> list[int]:
    """Return RESERVED tickets older than timeout_seconds to AVAILABLE.

    Returns the released numbers. now is injectable for testing.
    """
    current_time = now if now is not None else time.time()
    released = []
    for ticket in raffle.tickets:
        if ticket.status != TicketStatus.RESERVED or ticket.reserved_at is None:
            continue
        if current_time - ticket.reserved_at <= timeout_seconds:
            continue
        ticket.status = apply_transition(ticket.status, "expire")
        _clear_owner(ticket)
        released.append(ticket.number)
    if released:
        db.commit()
        logger.debug("Released expired reservations %s in raffle %s", released, raffle.id)
    return released


# ── Presentation ───────────────────────────────────────────────────────────────

def raffle_stats(raffle: Raffle) -> RaffleStats:
    counts = {TicketStatus.AVAILABLE: 0, TicketStatus.RESERVED: 0, TicketStatus.PAID: 0}
    for ticket in raffle.tickets:
        counts[ticket.status] = counts.get(ticket.status, 0) + 1
    return RaffleStats(
        paid=counts[TicketStatus.PAID],
        reserved=counts[TicketStatus.RESERVED],
        available=counts[TicketStatus.AVAILABLE],
        total=raffle.total_tickets,
    )


def _summary_fields(raffle: Raffle) -> dict:
    return {
        "id": raffle.id,
        "name": raffle.name,
        "description": raffle.description,
        "prize": raffle.prize,
        "image_url": raffle.image_url,
        "ticket_price": cents_to_price(raffle.ticket_price_cents),
        "total_tickets": raffle.total_tickets,
        "draw_date": raffle.draw_date,
        "pix_key": raffle.pix_key,
        "winner": raffle.winner,
        "created_at": raffle.created_at,
        "stats": raffle_stats(raffle),
    }


def to_summary(raffle: Raffle) -> RaffleSummary:
    return RaffleSummary(**_summary_fields(raffle))


def to_detail(raffle: Raffle) -> RaffleDetail:
    return RaffleDetail(
        **_summary_fields(raffle),
        tickets=[TicketOut.model_validate(ticket) for ticket in raffle.tickets],
    )


# ── Purchases ──────────────────────────────────────────────────────────────────

def _tickets_by_number(raffle: Raffle) -> dict[int, Ticket]:
    return {ticket.number: ticket for ticket in raffle.tickets}


def _select_available(raffle: Raffle, numbers: list[int]) -> list[Ticket]:
    by_number = _tickets_by_number(raffle)
    missing = [n for n in numbers if n not in by_number]
    if missing:
        raise TicketNotFoundError(raffle.id, missing)
    tickets = [by_number[n] for n in numbers]
    unavailable = [t.number for t in tickets if t.status != TicketStatus.AVAILABLE]
    if unavailable:
        raise TicketUnavailableError(unavailable)
    return tickets


def quote_checkout(raffle: Raffle, numbers: list[int], settings: Settings) -> CheckoutResponse:
    """Price the selected numbers and produce the Pix payload to pay for them."""
    _select_available(raffle, numbers)
    total = cents_to_price(raffle.ticket_price_cents * len(numbers))
    try:
        payload = PayloadBuilder(settings.pix_scheme).build(
            PayloadRequest(
                payee_key=raffle.pix_key,
                amount=total,
                merchant_name=raffle.name,
                merchant_city=settings.merchant_city,
            )
        )
    except ValidationError as exc:
        logger.error("Cannot build Pix payload for raffle %s: %s", raffle.id, exc)
        raise PaymentPayloadError(
            f"Raffle '{raffle.id}' cannot be paid with the configured payment scheme"
        ) from exc
    return CheckoutResponse(
        raffle_id=raffle.id,
        numbers=numbers,
        total=total,
        pix_key=raffle.pix_key,
        pix_payload=payload,
        qr_code_url=qr_code_url(payload, settings.qr_service_url, settings.qr_size),
    )


def reserve_tickets(
    db: Session,
    raffle: Raffle,
    request: ReservationRequest,
    settings: Settings,
    now: float | None = None,
) -> ReservationResponse:
    """Mark the requested numbers RESERVED for the buyer.

    Last write wins: there is no lock between the availability check and the
    commit.
    """
    quote = quote_checkout(raffle, request.numbers, settings)
    reserved_at = now if now is not None else time.time()
    for ticket in _select_available(raffle, request.numbers):
        ticket.status = apply_transition(ticket.status, "reserve")
        ticket.owner_name = request.owner_name
        ticket.owner_contact = request.owner_contact
        ticket.reserved_at = reserved_at
    db.commit()
    logger.info("Reserved tickets %s in raffle %s", request.numbers, raffle.id)
    return ReservationResponse(
        **quote.model_dump(),
        owner_name=request.owner_name,
        owner_contact=request.owner_contact,
    )


def reservation_message(raffle_name: str, reservation: ReservationResponse) -> str:
    numbers = ", ".join(str(n) for n in reservation.numbers)
    return (
        f"{reservation.owner_name} ({reservation.owner_contact}) reservou "
        f"os números {numbers} da rifa \"{raffle_name}\". "
        f"Total: R$ {reservation.total}"
    )


# ── Administration ─────────────────────────────────────────────────────────────

def _get_ticket(raffle: Raffle, number: int) -> Ticket:
    ticket = _tickets_by_number(raffle).get(number)
    if ticket is None:
        raise TicketNotFoundError(raffle.id, [number])
    return ticket


def _clear_owner(ticket: Ticket) -> None:
    ticket.owner_name = None
    ticket.owner_contact = None
    ticket.reserved_at = None


def confirm_payment(db: Session, raffle: Raffle, number: int) -> Ticket:
    ticket = _get_ticket(raffle, number)
    ticket.status = apply_transition(ticket.status, "confirm_payment")
    db.commit()
    logger.info("Confirmed payment for ticket %d in raffle %s", number, raffle.id)
    return ticket


def release_ticket(db: Session, raffle: Raffle, number: int) -> Ticket:
    ticket = _get_ticket(raffle, number)
    ticket.status = apply_transition(ticket.status, "release")
    _clear_owner(ticket)
    db.commit()
    logger.info("Released ticket %d in raffle %s", number, raffle.id)
    return ticket


def set_winner(db: Session, raffle: Raffle, number: int) -> Raffle:
    if number < 1 or number > raffle.total_tickets:
        raise InvalidWinnerError(
            f"Winning number must be between 1 and {raffle.total_tickets}, got {number}"
        )
    raffle.winner = number
    db.commit()
    logger.info("Raffle %s winner set to %d", raffle.id, number)
    return raffle
