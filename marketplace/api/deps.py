"""
FastAPI dependencies for authentication, authorization and service wiring.

Services are built per request around the request's database session;
repositories never outlive the session they were created with.
"""

from typing import Annotated, Optional

import httpx
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.config import get_settings
from marketplace.core.logging import get_logger, set_user_id
from marketplace.core.security import Principal, Role, TokenError, decode_token
from marketplace.database.connection import get_db
from marketplace.services.addresses.repository import AddressRepository
from marketplace.services.catalog.repository import CatalogRepository
from marketplace.services.orders.enums import PaymentMethod
from marketplace.services.orders.repository import OrderRepository
from marketplace.services.orders.service import OrderService
from marketplace.services.orders.shipping import ShippingCoordinator
from marketplace.services.payments.gateways import QRGatewayClient, RedirectGatewayClient
from marketplace.services.payments.reconciler import CallbackReconciler
from marketplace.services.payments.repository import PaymentRepository
from marketplace.services.payments.service import PaymentService

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)

_http_client: Optional[httpx.AsyncClient] = None


def get_http_client() -> httpx.AsyncClient:
    """Process wide AsyncClient shared by the gateway adapters."""
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(get_settings().gateway_timeout_seconds)
        )
    return _http_client


async def close_http_client() -> None:
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


async def get_current_principal(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> Principal:
    """
    Validate the bearer token and return the caller.

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        logger.warning("Authentication failed: No credentials provided")
        raise credentials_exception

    try:
        principal = decode_token(credentials.credentials)
    except TokenError as e:
        logger.warning("Authentication failed", code=e.code)
        raise credentials_exception from e

    set_user_id(str(principal.user_id))
    return principal


def require_role(*allowed_roles: Role):
    """
    Create a dependency that requires specific roles.

    Example:
        @router.post("/x", dependencies=[Depends(require_role(Role.SELLER))])
    """

    async def role_checker(
        principal: Annotated[Principal, Depends(get_current_principal)],
    ) -> Principal:
        if principal.role not in allowed_roles:
            logger.warning(
                "Access denied: Insufficient permissions",
                user_id=str(principal.user_id),
                user_role=principal.role.value,
                required_roles=[role.value for role in allowed_roles],
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return role_checker


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
CurrentBuyer = Annotated[Principal, Depends(require_role(Role.BUYER, Role.ADMIN))]
CurrentSeller = Annotated[Principal, Depends(require_role(Role.SELLER, Role.ADMIN))]
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]


def get_order_service(db: DatabaseSession) -> OrderService:
    return OrderService(
        repository=OrderRepository(db),
        catalog=CatalogRepository(db),
        addresses=AddressRepository(db),
    )


def get_shipping_coordinator(db: DatabaseSession) -> ShippingCoordinator:
    return ShippingCoordinator(repository=OrderRepository(db))


def get_payment_service(db: DatabaseSession) -> PaymentService:
    client = get_http_client()
    return PaymentService(
        repository=PaymentRepository(db),
        gateways={
            PaymentMethod.QR_GATEWAY: QRGatewayClient(http_client=client),
            PaymentMethod.REDIRECT_GATEWAY: RedirectGatewayClient(http_client=client),
        },
    )


def get_reconciler(db: DatabaseSession) -> CallbackReconciler:
    return CallbackReconciler(repository=PaymentRepository(db))


def get_redirect_gateway() -> RedirectGatewayClient:
    return RedirectGatewayClient(http_client=get_http_client())


OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
ShippingCoordinatorDep = Annotated[ShippingCoordinator, Depends(get_shipping_coordinator)]
PaymentServiceDep = Annotated[PaymentService, Depends(get_payment_service)]
ReconcilerDep = Annotated[CallbackReconciler, Depends(get_reconciler)]
RedirectGatewayDep = Annotated[RedirectGatewayClient, Depends(get_redirect_gateway)]
