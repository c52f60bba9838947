"""Fixtures for application service tests."""

import pytest


@pytest.fixture
def place(service, two_seller_cart, make_selections):
    """Place an order through the service and return it."""

    async def _place(buyer_id="buyer-1", lines=None, key=None, **selection_fields):
        result = await service.create_order(
            buyer_id=buyer_id,
            lines=two_seller_cart if lines is None else lines,
            selections=make_selections(**selection_fields),
            idempotency_key=key,
        )
        return result.order

    return _place
