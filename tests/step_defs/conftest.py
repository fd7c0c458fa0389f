"""Shared BDD step definitions for all feature files.

Step definitions live here because pytest-bdd registers step fixtures in the
caller module's locals. Only conftest.py modules are auto-discovered by pytest,
so steps shared across test files in this directory MUST be defined here.

All parametric steps use parsers.parse(); plain strings are matched exactly.
"""
import time

import pytest
from pytest_bdd import given, parsers, then, when

from rifafacil.models import Raffle, Ticket, TicketStatus
from tests.fixtures.payloads import make_reservation_payload
from tests.helpers.admin import admin_headers


@pytest.fixture
def context():
    return {}


def _numbers(text: str) -> list[int]:
    return [int(n) for n in text.split(",") if n.strip()]


def _ticket(db_session, raffle_id: str, number: int) -> Ticket:
    db_session.expire_all()
    ticket = (
        db_session.query(Ticket)
        .filter(Ticket.raffle_id == raffle_id, Ticket.number == number)
        .one_or_none()
    )
    assert ticket is not None, f"Ticket {number} not found in raffle {raffle_id!r}"
    return ticket


# ── Given ──────────────────────────────────────────────────────────────────────

@given("an open raffle")
def given_open_raffle(open_raffle, context):
    context["raffle_id"] = open_raffle.id


@given("no administrator password is configured")
def no_admin_password(app):
    app.state.settings = app.state.settings.model_copy(update={"admin_password": None})


@given(parsers.parse('the payment scheme identifier is configured as "{gui}"'))
def configured_scheme(gui, app):
    settings = app.state.settings
    scheme = settings.pix_scheme.model_copy(update={"gui": gui})
    app.state.settings = settings.model_copy(update={"pix_scheme": scheme})


@given(parsers.parse('"{owner}" reserved numbers "{numbers}" {minutes:d} minutes ago'))
def reserved_minutes_ago(owner, numbers, minutes, db_session, context):
    reserved_at = time.time() - minutes * 60
    for number in _numbers(numbers):
        ticket = _ticket(db_session, context["raffle_id"], number)
        ticket.status = TicketStatus.RESERVED
        ticket.owner_name = owner
        ticket.owner_contact = "65999990000"
        ticket.reserved_at = reserved_at
    db_session.commit()


@given(parsers.parse('"{owner}" reserved numbers "{numbers}"'))
def reserved_now(owner, numbers, client, context):
    response = client.post(
        f"/raffles/{context['raffle_id']}/reservations",
        json=make_reservation_payload(_numbers(numbers), owner_name=owner),
    )
    assert response.status_code == 201, response.text


@given(parsers.parse("ticket {number:d} has been paid"))
def ticket_paid(number, db_session, context):
    ticket = _ticket(db_session, context["raffle_id"], number)
    ticket.status = TicketStatus.PAID
    db_session.commit()


# ── When ───────────────────────────────────────────────────────────────────────

@when("a buyer views the raffle")
def view_raffle(client, context):
    context["response"] = client.get(f"/raffles/{context['raffle_id']}")


@when(parsers.parse('a buyer checks out numbers "{numbers}"'))
def checkout(numbers, client, context):
    context["response"] = client.post(
        f"/raffles/{context['raffle_id']}/checkout",
        json={"numbers": _numbers(numbers)},
    )


@when(parsers.parse("the administrator confirms payment for ticket {number:d}"))
def admin_confirms(number, client, context):
    context["response"] = client.post(
        f"/raffles/{context['raffle_id']}/tickets/{number}/confirm",
        headers=admin_headers(),
    )


@when(parsers.parse("the administrator releases ticket {number:d}"))
def admin_releases(number, client, context):
    context["response"] = client.post(
        f"/raffles/{context['raffle_id']}/tickets/{number}/release",
        headers=admin_headers(),
    )


# ── Then ───────────────────────────────────────────────────────────────────────

@then(parsers.parse("the response status should be {code:d}"))
def check_status_code(code, context):
    assert context["response"].status_code == code, (
        f"Expected {code}, got {context['response'].status_code}: "
        f"{context['response'].text}"
    )


@then("the response should carry an error message")
def check_error_body(context):
    body = context["response"].json()
    assert body.get("error"), f"No error message in body: {body}"


@then(parsers.parse('tickets "{numbers}" should be "{status}"'))
def check_tickets_status(numbers, status, db_session, context):
    for number in _numbers(numbers):
        ticket = _ticket(db_session, context["raffle_id"], number)
        assert ticket.status == status, (
            f"Ticket {number}: expected {status!r}, got {ticket.status!r}"
        )


@then(parsers.parse('ticket {number:d} should be "{status}"'))
def check_ticket_status(number, status, db_session, context):
    ticket = _ticket(db_session, context["raffle_id"], number)
    assert ticket.status == status, (
        f"Ticket {number}: expected {status!r}, got {ticket.status!r}"
    )


@then(parsers.parse('ticket {number:d} should belong to "{owner}"'))
def check_ticket_owner(number, owner, db_session, context):
    ticket = _ticket(db_session, context["raffle_id"], number)
    assert ticket.owner_name == owner, f"Expected owner {owner!r}, got {ticket.owner_name!r}"


@then(parsers.parse("ticket {number:d} should have no owner"))
def check_ticket_no_owner(number, db_session, context):
    ticket = _ticket(db_session, context["raffle_id"], number)
    assert ticket.owner_name is None
    assert ticket.owner_contact is None
    assert ticket.reserved_at is None


@then(parsers.parse("the raffle should count {paid:d} paid, {reserved:d} reserved and {available:d} available"))
def check_stats(paid, reserved, available, client, context):
    stats = client.get(f"/raffles/{context['raffle_id']}").json()["stats"]
    assert stats["paid"] == paid, stats
    assert stats["reserved"] == reserved, stats
    assert stats["available"] == available, stats


@then("the raffle should no longer exist")
def check_raffle_gone(db_session, context):
    db_session.expire_all()
    assert db_session.get(Raffle, context["raffle_id"]) is None
    remaining = db_session.query(Ticket).filter(Ticket.raffle_id == context["raffle_id"]).count()
    assert remaining == 0, f"{remaining} orphan tickets left"
