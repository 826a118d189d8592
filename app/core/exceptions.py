"""Domain errors raised by services and routers.

Each error carries the HTTP status it maps to; the handlers registered in
``app.main`` render them as ``{"error": message}`` with an optional
``"errors"`` list for multi-violation failures.
"""
from typing import List, Optional

from pydantic.alias_generators import to_camel


class AppError(Exception):
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[str]] = None, **extra):
        super().__init__(message)
        self.message = message
        self.errors = errors
        self.extra = extra

    def to_payload(self) -> dict:
        payload = {"error": self.message}
        if self.errors is not None:
            payload["errors"] = self.errors
        # Extra context keys follow the camelCase wire format
        payload.update({to_camel(key): value for key, value in self.extra.items()})
        return payload


class ValidationError(AppError):
    status_code = 400


class ConflictError(AppError):
    status_code = 400


class NotFoundError(AppError):
    status_code = 404


class PermissionDeniedError(AppError):
    status_code = 403


class HierarchyCycleError(ConflictError):
    def __init__(self, group_ids):
        self.group_ids = sorted(group_ids)
        super().__init__(
            "Group hierarchy contains a cycle",
            errors=[f"Group {gid} is part of a reporting cycle" for gid in self.group_ids],
        )
