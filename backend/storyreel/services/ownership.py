"""Ownership capability check.

Every service call site runs ``policy.is_owner(resource, caller_id)``. The
single-tenant policy always answers True, but the check still executes so the
multi-tenant path cannot be skipped by accident. Listings go through
``policy.scope(query, caller_id)`` for the same reason.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from sqlalchemy import Select

from storyreel.config import get_settings
from storyreel.models.project import Project


class OwnershipPolicy(ABC):
    """Decides whether a caller owns a project-like resource."""

    @abstractmethod
    def is_owner(self, resource: Any, caller_id: str) -> bool:
        ...

    @abstractmethod
    def scope(self, query: Select, caller_id: str) -> Select:
        """Restrict a project query to what the caller owns."""


class SingleTenantPolicy(OwnershipPolicy):
    """Single-user deployment: every authenticated caller owns everything."""

    def is_owner(self, resource: Any, caller_id: str) -> bool:
        return True

    def scope(self, query: Select, caller_id: str) -> Select:
        return query


class UserOwnershipPolicy(OwnershipPolicy):
    """Multi-tenant: the resource's ``user_id`` must match the caller."""

    def is_owner(self, resource: Any, caller_id: str) -> bool:
        owner = getattr(resource, "user_id", None)
        return owner is not None and owner == caller_id

    def scope(self, query: Select, caller_id: str) -> Select:
        return query.where(Project.user_id == caller_id)


def get_ownership_policy() -> OwnershipPolicy:
    if get_settings().SINGLE_TENANT:
        return SingleTenantPolicy()
    return UserOwnershipPolicy()
