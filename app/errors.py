"""Domain exceptions raised by the service layer.

Routers translate these into HTTP responses; nothing below the router layer
knows about status codes.
"""
from __future__ import annotations


class PartnerDeskError(Exception):
    """Base class for domain errors."""


class StoreUnavailable(PartnerDeskError):
    """The relational store could not be read or written. Safe to retry."""


class InvariantViolation(PartnerDeskError):
    """Persisted data breaks a money invariant and must not be clamped away."""


class PaymentRequestError(PartnerDeskError):
    """A payment request could not be created or transitioned."""


class DocumentNotFound(PartnerDeskError):
    """The requested stored object does not exist."""
