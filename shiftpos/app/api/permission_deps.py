"""Permission dependencies.

Usage in endpoints::

    @router.post("/{shift_id}/approve")
    def approve(
        shift_id: UUID,
        db: Session = Depends(get_db),
        current_user: User = Depends(require_permission("shift:approve")),
    ):
        ...
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, status

from shiftpos.app.core.permissions import permissions_for
from shiftpos.app.models.user import User

from shiftpos.app.api.deps import get_current_user


def require_permission(*permission_codes: str):
    """FastAPI dependency factory; checks the user's role grants **all** listed codes.

    Returns the authenticated ``User`` so the endpoint can use it::

        current_user = Depends(require_permission("pos:sale"))
    """

    def _checker(current_user: User = Depends(get_current_user)) -> User:
        missing = set(permission_codes) - permissions_for(current_user.role)
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permissions: {', '.join(sorted(missing))}",
            )
        return current_user

    return _checker
