"""Provider adapters."""

from __future__ import annotations

from .http import HttpProvider
from .memory import InMemoryProvider, ProviderCall

__all__ = ["HttpProvider", "InMemoryProvider", "ProviderCall"]
