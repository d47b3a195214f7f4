# src/mk_cart/infrastructure/persistence.py
"""CartRepository — raw SQL persistence implementation."""
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_cart.domain.models import CartItem, CartLine, Favorite, Product
from src.mk_common.database import backend_errors

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_ITEM_COLUMNS = "id, client_id, product_id, quantity"

_LIST_LINES_SQL = text("""
    SELECT c.id, c.client_id, c.product_id, c.quantity,
           p.merchant_id, p.title, p.price, p.image_url
    FROM cart_items c
    JOIN products p ON p.id = c.product_id
    WHERE c.client_id = :client_id
    ORDER BY c.created_at ASC, c.id ASC
""")

_GET_ITEM_SQL = text(f"""
    SELECT {_ITEM_COLUMNS} FROM cart_items
    WHERE id = :id AND client_id = :client_id
""")

_GET_PRODUCT_SQL = text("""
    SELECT id, merchant_id, title, price, image_url FROM products WHERE id = :id
""")

# One line per (client, product); adding again merges quantities.
_ADD_ITEM_SQL = text(f"""
    INSERT INTO cart_items (client_id, product_id, quantity)
    VALUES (:client_id, :product_id, :quantity)
    ON CONFLICT (client_id, product_id)
    DO UPDATE SET quantity = cart_items.quantity + EXCLUDED.quantity
    RETURNING {_ITEM_COLUMNS}
""")

_UPDATE_QUANTITY_SQL = text(f"""
    UPDATE cart_items SET quantity = :quantity
    WHERE id = :id AND client_id = :client_id
    RETURNING {_ITEM_COLUMNS}
""")

_REMOVE_ITEMS_SQL = text("""
    DELETE FROM cart_items
    WHERE client_id = :client_id AND id = ANY(CAST(:ids AS VARCHAR[]))
    RETURNING id
""")

_CLEAR_SQL = text("""
    DELETE FROM cart_items WHERE client_id = :client_id RETURNING id
""")

_COUNT_LINES_SQL = text("""
    SELECT COUNT(*) AS n FROM cart_items WHERE client_id = :client_id
""")

_COUNT_PRODUCTS_SQL = text("""
    SELECT COUNT(*) AS n FROM products WHERE merchant_id = :merchant_id
""")

_LIST_FAVORITES_SQL = text("""
    SELECT f.id, f.client_id, f.product_id,
           p.merchant_id, p.title, p.price, p.image_url
    FROM favorites f
    JOIN products p ON p.id = f.product_id
    WHERE f.client_id = :client_id
    ORDER BY f.created_at DESC, f.id DESC
""")

# Favoriting twice is a no-op that still returns the existing row.
_ADD_FAVORITE_SQL = text("""
    INSERT INTO favorites (client_id, product_id)
    VALUES (:client_id, :product_id)
    ON CONFLICT (client_id, product_id)
    DO UPDATE SET product_id = EXCLUDED.product_id
    RETURNING id
""")

_REMOVE_FAVORITE_SQL = text("""
    DELETE FROM favorites
    WHERE client_id = :client_id AND product_id = :product_id
    RETURNING id
""")

_COUNT_FAVORITES_SQL = text("""
    SELECT COUNT(*) AS n FROM favorites WHERE client_id = :client_id
""")

# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def row_to_item(row: Any) -> CartItem:
    return CartItem(
        id=str(row.id),
        client_id=str(row.client_id),
        product_id=str(row.product_id),
        quantity=int(row.quantity),
    )


def row_to_product(row: Any) -> Product:
    return Product(
        id=str(row.id),
        merchant_id=str(row.merchant_id),
        title=row.title,
        price=int(row.price),
        image_url=row.image_url,
    )


def row_to_line(row: Any) -> CartLine:
    return CartLine(
        item=row_to_item(row),
        product=Product(
            id=str(row.product_id),
            merchant_id=str(row.merchant_id),
            title=row.title,
            price=int(row.price),
            image_url=row.image_url,
        ),
    )


def row_to_favorite(row: Any) -> Favorite:
    return Favorite(
        id=str(row.id),
        client_id=str(row.client_id),
        product=Product(
            id=str(row.product_id),
            merchant_id=str(row.merchant_id),
            title=row.title,
            price=int(row.price),
            image_url=row.image_url,
        ),
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CartRepository:
    """Concrete implementation of CartRepositoryProtocol using raw SQL."""

    async def list_lines(self, client_id: str, db: AsyncSession) -> list[CartLine]:
        with backend_errors("load cart"):
            result = await db.execute(_LIST_LINES_SQL, {"client_id": client_id})
            rows = result.fetchall()
        return [row_to_line(row) for row in rows]

    async def get_item(self, item_id: str, client_id: str, db: AsyncSession) -> CartItem | None:
        with backend_errors("load cart item"):
            result = await db.execute(_GET_ITEM_SQL, {"id": item_id, "client_id": client_id})
            row = result.fetchone()
        return row_to_item(row) if row is not None else None

    async def get_product(self, product_id: str, db: AsyncSession) -> Product | None:
        with backend_errors("load product"):
            result = await db.execute(_GET_PRODUCT_SQL, {"id": product_id})
            row = result.fetchone()
        return row_to_product(row) if row is not None else None

    async def add_item(
        self, client_id: str, product_id: str, quantity: int, db: AsyncSession
    ) -> CartItem:
        with backend_errors("add cart item"):
            result = await db.execute(
                _ADD_ITEM_SQL,
                {"client_id": client_id, "product_id": product_id, "quantity": quantity},
            )
            row = result.fetchone()
        return row_to_item(row)

    async def update_quantity(
        self, item_id: str, client_id: str, quantity: int, db: AsyncSession
    ) -> CartItem | None:
        with backend_errors("update cart item"):
            result = await db.execute(
                _UPDATE_QUANTITY_SQL,
                {"id": item_id, "client_id": client_id, "quantity": quantity},
            )
            row = result.fetchone()
        return row_to_item(row) if row is not None else None

    async def remove_items(
        self, item_ids: list[str], client_id: str, db: AsyncSession
    ) -> list[str]:
        if not item_ids:
            return []
        with backend_errors("remove cart items"):
            result = await db.execute(
                _REMOVE_ITEMS_SQL, {"ids": list(item_ids), "client_id": client_id}
            )
            rows = result.fetchall()
        return [str(row.id) for row in rows]

    async def clear(self, client_id: str, db: AsyncSession) -> list[str]:
        with backend_errors("clear cart"):
            result = await db.execute(_CLEAR_SQL, {"client_id": client_id})
            rows = result.fetchall()
        return [str(row.id) for row in rows]

    async def count_lines(self, client_id: str, db: AsyncSession) -> int:
        with backend_errors("count cart items"):
            result = await db.execute(_COUNT_LINES_SQL, {"client_id": client_id})
            return int(result.scalar_one())

    async def count_products(self, merchant_id: str, db: AsyncSession) -> int:
        with backend_errors("count products"):
            result = await db.execute(_COUNT_PRODUCTS_SQL, {"merchant_id": merchant_id})
            return int(result.scalar_one())


class FavoriteRepository:
    """Concrete implementation of FavoriteRepositoryProtocol using raw SQL."""

    async def list_for(self, client_id: str, db: AsyncSession) -> list[Favorite]:
        with backend_errors("load favorites"):
            result = await db.execute(_LIST_FAVORITES_SQL, {"client_id": client_id})
            rows = result.fetchall()
        return [row_to_favorite(row) for row in rows]

    async def add(self, client_id: str, product_id: str, db: AsyncSession) -> str:
        with backend_errors("add favorite"):
            result = await db.execute(
                _ADD_FAVORITE_SQL, {"client_id": client_id, "product_id": product_id}
            )
            row = result.fetchone()
        return str(row.id)

    async def remove(self, client_id: str, product_id: str, db: AsyncSession) -> bool:
        with backend_errors("remove favorite"):
            result = await db.execute(
                _REMOVE_FAVORITE_SQL, {"client_id": client_id, "product_id": product_id}
            )
            row = result.fetchone()
        return row is not None

    async def count(self, client_id: str, db: AsyncSession) -> int:
        with backend_errors("count favorites"):
            result = await db.execute(_COUNT_FAVORITES_SQL, {"client_id": client_id})
            return int(result.scalar_one())
