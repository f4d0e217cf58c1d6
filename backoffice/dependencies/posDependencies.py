from typing import Annotated
from fastapi import Depends, Path, Request, HTTPException, status

from backoffice.modules.catalog.client import CatalogClient
from backoffice.modules.pos.services import OrderSubmissionService, POSTerminalService
from backoffice.modules.pos.session import CheckoutSession, SessionRegistry


# Sesiones en memoria del proceso, una por terminal de cada tienda
session_registry = SessionRegistry()


def get_shop_id(request: Request) -> str:
    """Extract shop_id from request state set by ShopContextMiddleware"""
    if not hasattr(request.state, 'shop_id'):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Shop context not found. Ensure X-Shop-ID header is provided."
        )
    return request.state.shop_id


ShopId = Annotated[str, Depends(get_shop_id)]


def get_session_registry() -> SessionRegistry:
    return session_registry


def get_checkout_session(
    registry: Annotated[SessionRegistry, Depends(get_session_registry)],
    shop_id: ShopId,
    terminal_id: str = Path(..., min_length=1, max_length=64, description="ID del terminal POS")
) -> CheckoutSession:
    return registry.get(shop_id, terminal_id)


def get_catalog_client(shop_id: ShopId):
    """Cliente del servicio de catálogo para la tienda de la petición"""
    client = CatalogClient(shop_id=shop_id)
    try:
        yield client
    finally:
        client.close()


CheckoutSessionDep = Annotated[CheckoutSession, Depends(get_checkout_session)]
CatalogClientDep = Annotated[CatalogClient, Depends(get_catalog_client)]


def get_terminal_service(session: CheckoutSessionDep, client: CatalogClientDep) -> POSTerminalService:
    return POSTerminalService(session, client)


def get_order_service(client: CatalogClientDep) -> OrderSubmissionService:
    return OrderSubmissionService(client)


TerminalServiceDep = Annotated[POSTerminalService, Depends(get_terminal_service)]
OrderServiceDep = Annotated[OrderSubmissionService, Depends(get_order_service)]
