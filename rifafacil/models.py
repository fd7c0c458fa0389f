import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


class TicketStatus:
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    PAID = "PAID"


class Raffle(Base):
    __tablename__ = "raffles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    prize = Column(String(255), nullable=False)
    image_url = Column(Text, nullable=True)
    ticket_price_cents = Column(Integer, nullable=False)  # centavos
    total_tickets = Column(Integer, nullable=False)
    draw_date = Column(DateTime, nullable=False)
    pix_key = Column(String(255), nullable=False)
    winner = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    tickets = relationship(
        "Ticket",
        back_populates="raffle",
        cascade="all, delete-orphan",
        order_by="Ticket.number",
    )


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    raffle_id = Column(String(36), ForeignKey("raffles.id"), nullable=False)
    number = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=TicketStatus.AVAILABLE)
    owner_name = Column(String(255), nullable=True)
    owner_contact = Column(String(255), nullable=True)
    reserved_at = Column(Float, nullable=True)  # unix seconds

    raffle = relationship("Raffle", back_populates="tickets")

    __table_args__ = (
        UniqueConstraint("raffle_id", "number", name="uq_tickets_raffle_number"),
    )
