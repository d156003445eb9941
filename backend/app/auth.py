from __future__ import annotations

import os

from fastapi import HTTPException, Request


def require_admin(request: Request) -> None:
    """Guard for configuration-changing routes; ADMIN_API_KEY unset means admin routes are closed."""
    key = os.environ.get("ADMIN_API_KEY")
    if not key or request.headers.get("x-admin-key") != key:
        raise HTTPException(status_code=401, detail="Admin key required")
