"""Guard failure messages for work order submission."""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum


class RequiredAssociation(str, Enum):
    """Associations a rate type can require before submission."""

    WORKERS = "workers"
    ITEMS = "items"
    WORKERS_OR_ITEMS = "workers_or_items"


DEFAULT_GUARD_MESSAGE = "Cannot submit work order: Required information is missing."


class GuardMessageResolver:
    """Maps a work order's required associations to a user-facing message.

    Resolution uses the first declared requirement; an empty set or an
    unregistered requirement falls back to the default message. New
    requirement kinds are added with ``register`` rather than new branches.
    """

    def __init__(
        self,
        messages: dict[RequiredAssociation, str] | None = None,
        default: str = DEFAULT_GUARD_MESSAGE,
    ):
        self._messages: dict[RequiredAssociation, str] = dict(
            messages if messages is not None else GUARD_FAILURE_MESSAGES
        )
        self.default = default

    def register(self, requirement: RequiredAssociation, message: str) -> None:
        """Add or replace the message for a requirement kind."""
        self._messages[requirement] = message

    def resolve(self, required: Sequence[RequiredAssociation]) -> str:
        """Message for the first requirement, or the default."""
        if not required:
            return self.default
        return self._messages.get(required[0], self.default)


GUARD_FAILURE_MESSAGES: dict[RequiredAssociation, str] = {
    RequiredAssociation.WORKERS: (
        "Cannot submit work order: Please add at least one worker before submitting."
    ),
    RequiredAssociation.ITEMS: (
        "Cannot submit work order: Please add at least one item/resource before submitting."
    ),
    RequiredAssociation.WORKERS_OR_ITEMS: (
        "Cannot submit work order: Please add at least one worker or item before submitting."
    ),
}

default_resolver = GuardMessageResolver()
