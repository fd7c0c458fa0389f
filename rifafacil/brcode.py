"""Static Pix "BR Code" payloads (EMV merchant-presented QR).

A payload is a run of tag-length-value fields in a fixed order, closed by the
CRC field ``63``. Field ``26`` (merchant account) and ``62`` (additional data)
are composite: their value is itself a run of sub-fields.
"""
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, ConfigDict, Field, StrictStr

from rifafacil.crc import crc16
from rifafacil.sanitizer import sanitize

MAX_VALUE_LENGTH = 99
MERCHANT_NAME_MAX_LENGTH = 25
MERCHANT_CITY_MAX_LENGTH = 15
DEFAULT_TRANSACTION_ID = "***"

PAYLOAD_FORMAT_INDICATOR = "01"
CRC_FIELD_PREFIX = "6304"

ID_PAYLOAD_FORMAT = "00"
ID_MERCHANT_ACCOUNT = "26"
ID_MERCHANT_ACCOUNT_GUI = "00"
ID_MERCHANT_ACCOUNT_KEY = "01"
ID_MERCHANT_CATEGORY_CODE = "52"
ID_TRANSACTION_CURRENCY = "53"
ID_TRANSACTION_AMOUNT = "54"
ID_COUNTRY_CODE = "58"
ID_MERCHANT_NAME = "59"
ID_MERCHANT_CITY = "60"
ID_ADDITIONAL_DATA = "62"
ID_ADDITIONAL_DATA_TXID = "05"


class PaymentField(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: StrictStr = Field(..., pattern=r"^\d{2}$")
    value: StrictStr = Field(..., max_length=MAX_VALUE_LENGTH)

    def render(self) -> str:
        return f"{self.id}{len(self.value):02d}{self.value}"


class CompositeField(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: StrictStr = Field(..., pattern=r"^\d{2}$")
    children: tuple[PaymentField, ...]

    @property
    def value(self) -> str:
        return "".join(child.render() for child in self.children)

    def to_field(self) -> PaymentField:
        """Flatten into a plain field. Raises ValidationError past 99 chars."""
        return PaymentField(id=self.id, value=self.value)

    def render(self) -> str:
        return self.to_field().render()


class PixScheme(BaseModel):
    """Constants of the instant-payment network the payload targets."""

    model_config = ConfigDict(frozen=True)

    gui: StrictStr = "br.gov.bcb.pix"
    merchant_category_code: StrictStr = "0000"
    currency: StrictStr = "986"
    country_code: StrictStr = "BR"

    @property
    def max_payee_key_length(self) -> int:
        """Longest key that keeps the merchant account field within 99 chars."""
        gui_field_length = 4 + len(self.gui)
        return MAX_VALUE_LENGTH - gui_field_length - 4


class PayloadRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    payee_key: StrictStr
    # Decimal rejects NaN and infinities on its own
    amount: Decimal = Field(..., ge=0)
    merchant_name: StrictStr
    merchant_city: StrictStr
    transaction_id: StrictStr = DEFAULT_TRANSACTION_ID


def format_amount(amount: Decimal) -> str:
    """Two fractional digits, '.' separator, no grouping.

    Callers pass validated non-negative amounts; copy_abs keeps Decimal("-0")
    from rendering as "-0.00".
    """
    quantized = amount.copy_abs().quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return format(quantized, "f")


class PayloadBuilder:
    def __init__(self, scheme: PixScheme | None = None) -> None:
        self.scheme = scheme or PixScheme()

    def fields(self, request: PayloadRequest) -> list[PaymentField | CompositeField]:
        """Top-level fields in wire order, CRC excluded."""
        scheme = self.scheme
        return [
            PaymentField(id=ID_PAYLOAD_FORMAT, value=PAYLOAD_FORMAT_INDICATOR),
            CompositeField(
                id=ID_MERCHANT_ACCOUNT,
                children=(
                    PaymentField(id=ID_MERCHANT_ACCOUNT_GUI, value=scheme.gui),
                    PaymentField(id=ID_MERCHANT_ACCOUNT_KEY, value=request.payee_key),
                ),
            ),
            PaymentField(id=ID_MERCHANT_CATEGORY_CODE, value=scheme.merchant_category_code),
            PaymentField(id=ID_TRANSACTION_CURRENCY, value=scheme.currency),
            PaymentField(id=ID_TRANSACTION_AMOUNT, value=format_amount(request.amount)),
            PaymentField(id=ID_COUNTRY_CODE, value=scheme.country_code),
            PaymentField(
                id=ID_MERCHANT_NAME,
                value=sanitize(request.merchant_name, MERCHANT_NAME_MAX_LENGTH),
            ),
            PaymentField(
                id=ID_MERCHANT_CITY,
                value=sanitize(request.merchant_city, MERCHANT_CITY_MAX_LENGTH),
            ),
            CompositeField(
                id=ID_ADDITIONAL_DATA,
                children=(
                    PaymentField(id=ID_ADDITIONAL_DATA_TXID, value=request.transaction_id),
                ),
            ),
        ]

    def build(self, request: PayloadRequest) -> str:
        body = "".join(field.render() for field in self.fields(request))
        body += CRC_FIELD_PREFIX
        return body + crc16(body)


def build_payload(
    payee_key: str,
    amount: Decimal | float | int,
    merchant_name: str,
    merchant_city: str,
    transaction_id: str = DEFAULT_TRANSACTION_ID,
    scheme: PixScheme | None = None,
) -> str:
    request = PayloadRequest(
        payee_key=payee_key,
        amount=amount,
        merchant_name=merchant_name,
        merchant_city=merchant_city,
        transaction_id=transaction_id,
    )
    return PayloadBuilder(scheme).build(request)


def verify_payload(payload: str) -> bool:
    """Check that the trailing CRC field matches the rest of the payload."""
    if len(payload) < len(CRC_FIELD_PREFIX) + 4:
        return False
    if payload[-8:-4] != CRC_FIELD_PREFIX:
        return False
    return crc16(payload[:-4]) == payload[-4:]
