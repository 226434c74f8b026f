"""Order domain exceptions.

Raised by the service layer and the state machine.  Each carries the HTTP
status the API boundary renders it with.
"""

from __future__ import annotations

from rest_framework import status

from modules.core.exceptions import DomainError


class OrderNotFound(DomainError):
    """The requested order does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Order not found."


class OrderAccessDenied(DomainError):
    """The caller is neither the order owner nor an administrator."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You do not have access to this order."


class InvalidTransition(DomainError):
    """The target status is unknown or not reachable from the current one."""

    default_message = "Invalid status transition."


class StatusConflict(InvalidTransition):
    """The order left the expected status while the transition was applied."""

    status_code = status.HTTP_409_CONFLICT
    default_message = "Order status changed concurrently; reload and retry."


class InvalidMoneyAmount(DomainError):
    """A price component or the order total would be negative."""

    default_message = "Order amounts cannot be negative."
