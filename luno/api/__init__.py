"""
API routers, one per resource.
"""

from luno.api import (
    accounts,
    analytics,
    auth,
    billing,
    bills,
    budgets,
    categories,
    chat,
    export,
    goals,
    households,
    notifications,
    subscription,
    tool_router,
    transactions,
)

ROUTERS = [
    auth.router,
    accounts.router,
    categories.router,
    transactions.router,
    budgets.router,
    goals.router,
    bills.router,
    analytics.router,
    subscription.router,
    billing.router,
    households.router,
    notifications.router,
    export.router,
    tool_router.router,
    chat.router,
]

__all__ = ["ROUTERS"]
