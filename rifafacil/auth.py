import hmac

ADMIN_PASSWORD_HEADER = "X-Admin-Password"


class AdminNotConfiguredError(Exception):
    """No administrator password has been set for this deployment."""


def verify_admin_password(expected: str | None, provided: str | None) -> bool:
    """
    Check the shared administrator password.

    Raises:
        AdminNotConfiguredError: If no password is configured.
        ValueError: If the provided password is missing or wrong.
    """
    if not expected:
        raise AdminNotConfiguredError(
            "Administrator password is not configured; set RIFAFACIL_ADMIN_PASSWORD."
        )
    if not provided:
        raise ValueError("Missing administrator password.")
    if not hmac.compare_digest(expected.encode(), provided.encode()):
        raise ValueError("Invalid administrator password.")
    return True
