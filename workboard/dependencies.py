"""
workboard/dependencies.py

Reusable FastAPI dependencies: the authorization policy and the per-request
notification dispatcher.
"""

from __future__ import annotations

from fastapi import BackgroundTasks

from workboard.authz import AuthorizationPolicy, default_policy
from workboard.notifications import NotificationDispatcher


def get_policy() -> AuthorizationPolicy:
    """
    Authorization policy used by every route.

    Override in tests with app.dependency_overrides[get_policy].
    """
    return default_policy


def get_dispatcher(background_tasks: BackgroundTasks) -> NotificationDispatcher:
    """
    Dispatcher whose deliveries run as background tasks after the response.

    Routes call dispatcher.flush() once their transaction has committed.
    """
    return NotificationDispatcher(schedule=background_tasks.add_task)
