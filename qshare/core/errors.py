"""
Domain exceptions raised by services and clients and handled by the bot flows.
"""

from __future__ import annotations


class QShareError(Exception):
    """Base class for all bot-level errors."""


class CollaboratorError(QShareError):
    """An outbound HTTP collaborator failed after retries."""

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}")
        self.service = service


class AlreadyRegistered(QShareError):
    """The Telegram account already has a user record."""


class EmailTaken(QShareError):
    """Another user already owns the email address."""


class ListingAccessDenied(QShareError):
    """Listing does not exist or the caller is not its owner/member."""


class ListingUnavailable(QShareError):
    """Listing is not live or has no remaining slots."""


class PublicIdExhausted(QShareError):
    """Could not generate a unique public id within the allowed attempts."""


class SlotUpdateRejected(QShareError):
    """New slot total is smaller than the slots already taken."""


class DuplicateLeaveRequest(QShareError):
    """A pending leave request already exists for this listing."""
