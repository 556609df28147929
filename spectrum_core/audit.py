# spectrum_core/audit.py
from __future__ import annotations

import logging
from typing import Optional

from spectrum_core.models import AuditLog
from spectrum_core.signals import get_current_user

logger = logging.getLogger(__name__)


def record(
    *,
    laboratory,
    module: str,
    action: str,
    details: str = "",
    user=None,
    data: Optional[dict] = None,
) -> AuditLog:
    """
    Write one audit row. Falls back to the request user stored by
    CurrentUserMiddleware when `user` is not given.
    """
    user = user or get_current_user()
    if user is not None and not getattr(user, "is_authenticated", False):
        user = None

    name = "system"
    if user is not None:
        name = (user.get_full_name() or "").strip() or user.get_username()

    entry = AuditLog.objects.create(
        laboratory=laboratory,
        user=user,
        user_name=name,
        module=module,
        action=action,
        details=details,
        data=data or {},
    )
    logger.debug("audit %s:%s %s", module, action, details)
    return entry
