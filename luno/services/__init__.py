"""
Services module - business logic layer.

Optional integrations (email, billing, tool router, chat) degrade
gracefully when their keys are not configured.
"""

from luno.services import (
    cache,
    limits,
    budgets,
    analytics,
    currency,
    email,
    http,
    billing,
    households,
    notifications,
    export,
    records,
    tool_router,
    chat,
)

__all__ = [
    "cache",
    "limits",
    "budgets",
    "analytics",
    "currency",
    "email",
    "http",
    "billing",
    "households",
    "notifications",
    "export",
    "records",
    "tool_router",
    "chat",
]
