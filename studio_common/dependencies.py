"""Reusable FastAPI dependencies for auth, studio access and database access."""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from .auth import decode_token
from .database import get_db
from .errors import AuthenticationRequiredError, AuthorizationError, NotAMemberError
from .models import ADMIN_ROLES, MembershipRole, Studio, StudioMembership, User

oauth_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


@dataclass(frozen=True)
class StudioAccess:
    """The acting user's standing in one studio."""

    studio: Studio
    user: User
    role: MembershipRole

    @property
    def studio_id(self) -> str:
        return self.studio.id

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def require_admin(self, action: str) -> None:
        if not self.is_admin:
            raise AuthorizationError(f"Only admins and owners can {action}")


def get_current_user(token: Optional[str] = Depends(oauth_scheme), db: Session = Depends(get_db)) -> User:
    if not token:
        raise AuthenticationRequiredError("You must be logged in")
    payload = decode_token(token)
    user_id: str | None = payload.get("sub")
    if user_id is None:
        raise AuthenticationRequiredError("Missing subject in token")
    user = db.get(User, user_id)
    if not user:
        raise AuthenticationRequiredError("User not found")
    return user


def resolve_studio_access(db: Session, studio_id: str, user: User) -> StudioAccess:
    membership = (
        db.query(StudioMembership)
        .filter(StudioMembership.studio_id == studio_id, StudioMembership.user_id == user.id)
        .first()
    )
    # Unknown studios read the same as studios the user does not belong to.
    if membership is None:
        raise NotAMemberError("You are not a member of this studio")
    return StudioAccess(studio=membership.studio, user=user, role=membership.role)


def get_studio_access(
    studio_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StudioAccess:
    return resolve_studio_access(db, studio_id, current_user)


def require_studio_admin(access: StudioAccess = Depends(get_studio_access)) -> StudioAccess:
    if not access.is_admin:
        raise AuthorizationError("Only admins and owners can manage sessions")
    return access
