"""Signed-in identity, passed explicitly into every core operation."""

from dataclasses import dataclass

from src.mk_common.enums import Role


@dataclass(frozen=True)
class Identity:
    id: str
    role: Role

    @property
    def is_merchant(self) -> bool:
        return self.role == Role.MERCHANT

    @property
    def order_owner_column(self) -> str:
        """Column of the orders table that scopes this identity's orders."""
        return "merchant_id" if self.is_merchant else "client_id"
