"""Admin API endpoints.

Lock overrides for orders whose edit window has closed. The state
machines still apply and every change is flagged in the audit trail.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from craftly_orders.api.orders import (
    TRANSITION_ERROR_RESPONSES,
    get_actor_id,
    get_service,
    transition_to_envelope,
)
from craftly_orders.api.schemas import (
    PaymentStatusUpdateRequest,
    StatusUpdateRequest,
    TransitionEnvelope,
)
from craftly_orders.application.order_service import OrderService

router = APIRouter(prefix="/api/admin/orders", tags=["Admin"])


@router.post(
    "/{order_id}/force-status",
    response_model=TransitionEnvelope,
    responses=TRANSITION_ERROR_RESPONSES,
    summary="Force order status",
    description="Change the order status after the edit window has closed (admin only).",
)
async def force_status(
    order_id: str,
    body: StatusUpdateRequest,
    service: Annotated[OrderService, Depends(get_service)],
    actor_id: Annotated[str, Depends(get_actor_id)],
) -> TransitionEnvelope:
    result = await service.force_transition_status(
        order_id, body.status, actor_id, reason=body.reason
    )
    return transition_to_envelope(result, service)


@router.post(
    "/{order_id}/force-payment-status",
    response_model=TransitionEnvelope,
    responses=TRANSITION_ERROR_RESPONSES,
    summary="Force payment status",
    description="Change the payment status after the edit window has closed (admin only).",
)
async def force_payment_status(
    order_id: str,
    body: PaymentStatusUpdateRequest,
    service: Annotated[OrderService, Depends(get_service)],
    actor_id: Annotated[str, Depends(get_actor_id)],
) -> TransitionEnvelope:
    result = await service.force_payment_status(
        order_id, body.payment_status, actor_id, reason=body.reason
    )
    return transition_to_envelope(result, service)
