from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from workspace_booking.config import settings

# HTTP Bearer scheme for JWT token
bearer_scheme = HTTPBearer(
    scheme_name="JWT",
    description="Enter 'Bearer <your_jwt_token>' issued by the identity provider.",
)


@dataclass
class CurrentUser:
    """Caller identity as asserted by the token; tenant_id scopes every query."""

    user_id: str
    tenant_id: str
    roles: List[str] = field(default_factory=list)
    email: Optional[str] = None
    name: Optional[str] = None

    def has_any_role(self, *roles):
        return any(role in self.roles for role in roles)


def create_access_token(data: dict, expires_minutes: Optional[int] = None):
    """Create a JWT access token with an expiration time."""
    to_encode = data.copy()
    minutes = settings.access_token_expire_minutes if expires_minutes is None else expires_minutes
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    to_encode.update({"exp": expire})
    if settings.jwt_audience and "aud" not in to_encode:
        to_encode["aud"] = settings.jwt_audience
    if settings.jwt_issuer and "iss" not in to_encode:
        to_encode["iss"] = settings.jwt_issuer
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _roles_from_claims(payload: dict) -> List[str]:
    roles = payload.get("roles")
    if roles is None:
        # Keycloak puts realm roles under realm_access
        roles = (payload.get("realm_access") or {}).get("roles", [])
    if isinstance(roles, str):
        roles = [roles]
    return [str(role) for role in roles]


def decode_token(token: str) -> CurrentUser:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    options = {"verify_aud": settings.jwt_audience is not None}
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options=options,
        )
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Could not validate credentials: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception
    tenant_id = payload.get("tenant_id")
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Tenant ID not found in token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return CurrentUser(
        user_id=str(user_id),
        tenant_id=str(tenant_id),
        roles=_roles_from_claims(payload),
        email=payload.get("email"),
        name=payload.get("name"),
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> CurrentUser:
    """Verify JWT token from Bearer header and return the caller."""
    return decode_token(credentials.credentials)


def require_roles(*roles):
    """Dependency factory rejecting callers that hold none of the given roles."""

    def dependency(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not current_user.has_any_role(*roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of the roles: {', '.join(roles)}",
            )
        return current_user

    return dependency
