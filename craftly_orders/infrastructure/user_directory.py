"""User directory.

Answers the two questions the order engine asks about users: is this
actor an admin, and which shipping methods does a seller offer. The
default implementation reads admins from settings and keeps seller
delivery preferences in memory.
"""

from typing import Protocol

from craftly_orders.domain.value_objects import ShippingMethod
from craftly_orders.infrastructure.config import settings

ALL_SHIPPING_METHODS: frozenset[ShippingMethod] = frozenset(ShippingMethod)


class UserDirectory(Protocol):
    """Role and seller-preference lookups."""

    async def is_admin(self, user_id: str) -> bool:
        ...

    async def delivery_methods(self, seller_id: str) -> frozenset[ShippingMethod]:
        ...


class SettingsUserDirectory:
    """User directory backed by configuration.

    Sellers without a recorded preference offer every shipping method.
    """

    def __init__(
        self,
        admin_user_ids: list[str] | None = None,
        seller_methods: dict[str, frozenset[ShippingMethod]] | None = None,
    ) -> None:
        self._admins = set(settings.admin_user_ids if admin_user_ids is None else admin_user_ids)
        self._seller_methods = dict(seller_methods or {})

    async def is_admin(self, user_id: str) -> bool:
        return user_id in self._admins

    async def delivery_methods(self, seller_id: str) -> frozenset[ShippingMethod]:
        return self._seller_methods.get(seller_id, ALL_SHIPPING_METHODS)

    def set_delivery_methods(self, seller_id: str, methods: set[ShippingMethod]) -> None:
        """Record which shipping methods a seller offers."""
        self._seller_methods[seller_id] = frozenset(methods)

    def grant_admin(self, user_id: str) -> None:
        self._admins.add(user_id)


_user_directory: SettingsUserDirectory | None = None


def get_user_directory() -> SettingsUserDirectory:
    """Get or create the user directory instance."""
    global _user_directory
    if _user_directory is None:
        _user_directory = SettingsUserDirectory()
    return _user_directory


def reset_user_directory() -> None:
    """Reset the user directory (for testing)."""
    global _user_directory
    _user_directory = None
