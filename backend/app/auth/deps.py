"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_user  → decode JWT, load the staff user from DB
  require_role(...) → restrict to specific roles
  require_admin     → shorthand for require_role(StaffRole.ADMIN)
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import decode_token
from app.database import get_db
from app.models.staff_user import StaffRole, StaffUser

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


# ── Core user dependency ────────────────────────────────────

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> StaffUser:
    """Decode the JWT and load the active staff user it names."""
    payload = decode_token(token)
    user_id: str | None = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await db.execute(select(StaffUser).where(StaffUser.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


# ── Role-based access control ───────────────────────────────

def require_role(*roles: StaffRole):
    """Dependency factory restricting a route to one or more roles.

    Usage:
        @router.get("/admin-only")
        async def admin_view(user: StaffUser = Depends(require_role(StaffRole.ADMIN))):
            ...
    """
    async def _check(user: StaffUser = Depends(get_current_user)) -> StaffUser:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(r.value for r in roles)}",
            )
        return user

    return _check


require_admin = require_role(StaffRole.ADMIN)
