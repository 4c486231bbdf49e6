"""Error taxonomy for the delivery pipeline.

- ValidationError: malformed input, raised before any Message row exists.
- NotFoundError, RenderError, ProviderConfigError: terminal for a message (or
  one recipient); the envelope is acknowledged.
- ProviderCallError: a vendor call failed; scoped to one recipient.
- InfrastructureError: store or broker unavailable; the envelope is not
  acknowledged and the broker redelivers it.
"""

from __future__ import annotations


class DeliveryError(Exception):
    """Base class for pipeline errors."""


class ValidationError(DeliveryError):
    pass


class NotFoundError(DeliveryError):
    pass


class RenderError(DeliveryError):
    pass


class ProviderConfigError(DeliveryError):
    pass


class SecureConfigError(ProviderConfigError):
    """Secure config envelope could not be encrypted or decrypted."""


class ProviderCallError(DeliveryError):
    """A vendor API call failed.

    `status_code` is None when no HTTP response was received.
    """

    def __init__(self, vendor: str, message: str, *, status_code: int | None = None, details: str = "") -> None:
        super().__init__(message)
        self.vendor = vendor
        self.status_code = status_code
        self.details = details


class InfrastructureError(DeliveryError):
    pass
