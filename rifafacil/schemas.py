from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator, model_validator

from rifafacil.brcode import PixScheme

# Upper bound for the default scheme; a configured scheme may allow less
PIX_KEY_MAX_LENGTH = PixScheme().max_payee_key_length
MAX_TICKETS = 10000


class RaffleCreate(BaseModel):
    name: StrictStr = Field(..., min_length=1, max_length=255)
    description: StrictStr = ""
    prize: StrictStr = Field(..., min_length=1, max_length=255)
    image_url: StrictStr | None = None
    ticket_price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    total_tickets: int = Field(..., ge=1, le=MAX_TICKETS)
    draw_date: datetime
    pix_key: StrictStr = Field(..., min_length=1, max_length=PIX_KEY_MAX_LENGTH)


class RaffleUpdate(BaseModel):
    name: StrictStr | None = Field(None, min_length=1, max_length=255)
    description: StrictStr | None = None
    prize: StrictStr | None = Field(None, min_length=1, max_length=255)
    image_url: StrictStr | None = None
    ticket_price: Decimal | None = Field(None, gt=0, max_digits=10, decimal_places=2)
    draw_date: datetime | None = None
    pix_key: StrictStr | None = Field(None, min_length=1, max_length=PIX_KEY_MAX_LENGTH)

    @model_validator(mode="after")
    def required_fields_not_null(self) -> "RaffleUpdate":
        nulled = [
            name for name in self.model_fields_set
            if name != "image_url" and getattr(self, name) is None
        ]
        if nulled:
            raise ValueError(f"fields cannot be null: {', '.join(sorted(nulled))}")
        return self


class TicketOut(BaseModel):
    number: int
    status: str
    owner_name: str | None = None
    owner_contact: str | None = None
    reserved_at: float | None = None

    model_config = ConfigDict(from_attributes=True)


class RaffleStats(BaseModel):
    paid: int
    reserved: int
    available: int
    total: int


class RaffleSummary(BaseModel):
    id: str
    name: str
    description: str
    prize: str
    image_url: str | None
    ticket_price: Decimal
    total_tickets: int
    draw_date: datetime
    pix_key: str
    winner: int | None
    created_at: datetime
    stats: RaffleStats


class RaffleDetail(RaffleSummary):
    tickets: list[TicketOut]


class CheckoutRequest(BaseModel):
    numbers: list[int] = Field(..., min_length=1)

    @field_validator("numbers")
    @classmethod
    def numbers_must_be_unique(cls, v: list[int]) -> list[int]:
        if len(set(v)) != len(v):
            raise ValueError("ticket numbers must not repeat")
        return sorted(v)


class ReservationRequest(CheckoutRequest):
    owner_name: StrictStr = Field(..., min_length=1, max_length=255)
    owner_contact: StrictStr = Field(..., min_length=1, max_length=255)


class CheckoutResponse(BaseModel):
    raffle_id: str
    numbers: list[int]
    total: Decimal
    pix_key: str
    pix_payload: str
    qr_code_url: str


class ReservationResponse(CheckoutResponse):
    owner_name: str
    owner_contact: str


class WinnerRequest(BaseModel):
    number: int


class LoginRequest(BaseModel):
    password: StrictStr
