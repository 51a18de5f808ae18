"""
FastAPI dependencies for authentication, authorization and services.

This module provides dependency functions that verify the bearer JWT issued
by the auth platform, resolve the caller's profile into an ``Actor``, enforce
roles, and hand out the gateway and order services stored on the
application state.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends
from fastapi.requests import HTTPConnection
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from cleanwash.core.config import get_settings
from cleanwash.core.exceptions import IdentityResolutionError, OrderPermissionError
from cleanwash.core.logging import get_logger, set_actor_id
from cleanwash.database.gateway import DataGateway
from cleanwash.database.models.profile import UserRole
from cleanwash.schemas.orders import Actor
from cleanwash.services.orders.repository import OrderRepository
from cleanwash.services.orders.service import OrderService
from cleanwash.services.orders.state_machine import OrderStateMachine

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


def get_gateway(connection: HTTPConnection) -> DataGateway:
    """Data gateway created during application startup."""
    return connection.app.state.gateway


def get_state_machine(connection: HTTPConnection) -> OrderStateMachine:
    """Shared state machine, which owns in-flight notification tasks."""
    return connection.app.state.state_machine


def get_order_repository(
    gateway: Annotated[DataGateway, Depends(get_gateway)],
) -> OrderRepository:
    return OrderRepository(gateway)


def get_order_service(
    repository: Annotated[OrderRepository, Depends(get_order_repository)],
    state_machine: Annotated[OrderStateMachine, Depends(get_state_machine)],
) -> OrderService:
    return OrderService(repository, state_machine)


def decode_access_token(token: str) -> UUID:
    """
    Verify an access token and return the profile id it was issued for.

    Raises:
        IdentityResolutionError: If the token is invalid, expired or has no
            usable ``sub`` claim
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
        )
    except JWTError as e:
        logger.warning(
            "Authentication failed: JWT validation error",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise IdentityResolutionError("Could not validate credentials") from e

    subject: Optional[str] = payload.get("sub")
    if not subject:
        logger.warning("Authentication failed: Token missing 'sub' claim")
        raise IdentityResolutionError("Could not validate credentials")

    try:
        return UUID(subject)
    except ValueError:
        logger.warning("Authentication failed: Invalid user ID format", user_id=subject)
        raise IdentityResolutionError("Could not validate credentials") from None


async def resolve_actor(token: str, gateway: DataGateway) -> Actor:
    """
    Resolve a bearer token into the acting user.

    Raises:
        IdentityResolutionError: If the token or the profile is unusable
        GatewayError: If the profile lookup fails
    """
    profile_id = decode_access_token(token)
    rows = await gateway.query("profiles", filters={"id": str(profile_id)})
    if not rows:
        logger.warning("Authentication failed: Profile not found", user_id=str(profile_id))
        raise IdentityResolutionError("Could not validate credentials")

    profile = rows[0]
    try:
        role = UserRole.from_string(profile.get("role") or "")
    except ValueError:
        logger.warning(
            "Authentication failed: Profile has no valid role",
            user_id=str(profile_id),
            role=profile.get("role"),
        )
        raise IdentityResolutionError("Profile has no valid role") from None

    set_actor_id(str(profile_id))
    return Actor(id=profile_id, role=role, full_name=profile.get("full_name"))


async def get_current_actor(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    gateway: Annotated[DataGateway, Depends(get_gateway)],
) -> Actor:
    """
    Authenticate the request's bearer token.

    Raises:
        IdentityResolutionError: 401 if the token is missing or invalid
    """
    if credentials is None:
        logger.warning("Authentication failed: No credentials provided")
        raise IdentityResolutionError("Not authenticated")

    return await resolve_actor(credentials.credentials, gateway)


def require_role(*allowed_roles: UserRole):
    """
    Create a dependency that requires specific user roles.

    Example:
        @router.get("/queue", dependencies=[Depends(require_role(UserRole.WORKER))])
    """

    async def role_checker(
        actor: Annotated[Actor, Depends(get_current_actor)],
    ) -> Actor:
        if actor.role not in allowed_roles:
            logger.warning(
                "Access denied: Insufficient permissions",
                user_id=str(actor.id),
                user_role=actor.role.value,
                required_roles=[role.value for role in allowed_roles],
            )
            raise OrderPermissionError(
                "Insufficient permissions",
                required_roles=[role.value for role in allowed_roles],
            )
        return actor

    return role_checker


CurrentActor = Annotated[Actor, Depends(get_current_actor)]
CurrentStudent = Annotated[Actor, Depends(require_role(UserRole.STUDENT))]
CurrentWorker = Annotated[Actor, Depends(require_role(UserRole.WORKER))]
OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
