"""
Domain exceptions raised by services and translated to HTTP by the app's
error handlers (see ``phaseplan/__init__.py``):

    NotFoundError         → 404
    ValidationError       → 400
    RefreshCooldownError  → 429 (handled in the insights blueprint)
"""

from datetime import datetime


class NotFoundError(Exception):
    """
    Missing record, or a record outside the caller's tenant.

    Both cases produce the same 404 so a foreign id never confirms that
    the record exists. ``resource_id`` and ``tenant_id`` end up in the
    log message only.
    """

    def __init__(self, resource: str, resource_id=None, tenant_id: int | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        parts = [resource]
        if resource_id is not None:
            parts.append(f"id={resource_id}")
        parts.append("not found")
        if tenant_id is not None:
            parts.append(f"(tenant={tenant_id})")
        super().__init__(" ".join(parts))


class ValidationError(Exception):
    """Bad input; ``details`` maps field names to what was wrong with them."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class RefreshCooldownError(Exception):
    """A tenant asked for a manual insight refresh before its cooldown ran out."""

    def __init__(self, next_refresh_at: datetime, wait_minutes: int) -> None:
        self.next_refresh_at = next_refresh_at
        self.wait_minutes = wait_minutes
        super().__init__(f"Insights were refreshed recently; retry in {wait_minutes} min")
