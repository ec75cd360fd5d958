"""Resolve the authenticated Django user into a domain ``Principal``."""

from typing import Optional

from .domain import Principal


def principal_from_request(request) -> Optional[Principal]:
    """Return the request's principal, or None for anonymous requests.

    Authentication itself (bearer JWT validation, inactive-account checks)
    is done by the DRF authentication classes before the view runs.
    """
    user = getattr(request, "user", None)
    if user is None or not user.is_authenticated:
        return None
    return Principal(
        id=str(user.pk),
        role=getattr(user, "role", None),
        active=bool(getattr(user, "is_active", False)),
    )
