"""Ports (interfaces) the reconciler core depends on."""

from __future__ import annotations

from .provider import Attributes, Provider, ProviderContext, ResourceSchema
from .state import StateStore
from .unit_of_work import StateRepositories, StateUnitOfWork, UnitOfWork

__all__ = [
    "Attributes",
    "Provider",
    "ProviderContext",
    "ResourceSchema",
    "StateRepositories",
    "StateStore",
    "StateUnitOfWork",
    "UnitOfWork",
]
