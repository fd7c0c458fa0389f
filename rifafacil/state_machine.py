from rifafacil.models import TicketStatus

TRANSITIONS: dict[str, dict[str, str]] = {
    TicketStatus.AVAILABLE: {
        "reserve": TicketStatus.RESERVED,
    },
    TicketStatus.RESERVED: {
        "confirm_payment": TicketStatus.PAID,
        "release": TicketStatus.AVAILABLE,
        "expire": TicketStatus.AVAILABLE,
    },
}

ALL_VALID_EVENTS: set[str] = {
    event for transitions in TRANSITIONS.values() for event in transitions
}

# No transitions out of these
TERMINAL_STATES: set[str] = {TicketStatus.PAID}


class InvalidTransitionError(Exception):
    """Event cannot be applied to a ticket in its current status."""


def apply_transition(current_status: str, event: str) -> str:
    """
    Apply a ticket lifecycle event.

    Returns the new status.
    Raises InvalidTransitionError for unknown events, terminal statuses, and
      events that do not apply to current_status.
    """
    if event not in ALL_VALID_EVENTS:
        raise InvalidTransitionError(f"Event '{event}' is not a valid ticket event.")

    if current_status in TERMINAL_STATES:
        raise InvalidTransitionError(
            f"Ticket in terminal status '{current_status}' cannot accept '{event}'."
        )

    state_transitions = TRANSITIONS.get(current_status, {})
    if event in state_transitions:
        return state_transitions[event]

    raise InvalidTransitionError(
        f"Event '{event}' cannot be applied to a ticket in '{current_status}' status."
    )
