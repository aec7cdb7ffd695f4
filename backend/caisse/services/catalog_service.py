# Overview: Product catalog; product master data, stock corrections and alert levels.

from __future__ import annotations

import logging

from ..errors import ConflictError, NotFoundError, ProductInUseError, ValidationError
from ..models import (
    Category,
    MovementKind,
    Product,
    SaleLine,
    StockMovement,
    SupplyOrderLine,
)
from .concurrency import atomic
from .filters import build_predicates, equals, paginate

log = logging.getLogger(__name__)


class StockLevel:
    OUT = "out"
    CRITICAL = "critical"
    LOW = "low"
    OK = "ok"


def stock_level(stock: int, threshold: int) -> str:
    """
    Alert level for a stock quantity.

    out: nothing left. critical: at or below the reorder threshold.
    low: at or below 1.5 x the threshold. ok: above that.
    """
    if stock <= 0:
        return StockLevel.OUT
    if stock <= threshold:
        return StockLevel.CRITICAL
    # stock <= 1.5 * threshold, in integers
    if stock * 2 <= threshold * 3:
        return StockLevel.LOW
    return StockLevel.OK


def _stock_level_predicate(level: str):
    stock, threshold = Product.stock_actuel, Product.reorder_threshold
    if level == StockLevel.OUT:
        return stock <= 0
    if level == StockLevel.CRITICAL:
        return (stock > 0) & (stock <= threshold)
    if level == StockLevel.LOW:
        return (stock > threshold) & (stock * 2 <= threshold * 3) & (stock > 0)
    if level == StockLevel.OK:
        return (stock > 0) & (stock * 2 > threshold * 3) & (stock > threshold)
    raise ValueError(level)


def _search(term: str):
    return Product.name.ilike(f"%{term.strip()}%")


PRODUCT_FILTERS = {
    "category_id": equals(Product.category_id),
    "is_active": equals(Product.is_active),
    "search": _search,
    "stock_level": _stock_level_predicate,
}

UPDATABLE_FIELDS = (
    "name",
    "description",
    "category_id",
    "purchase_price_cents",
    "sale_price_cents",
    "reorder_threshold",
)

PRICE_FIELDS = ("purchase_price_cents", "sale_price_cents", "reorder_threshold")


def _check_non_negative(data: dict) -> None:
    for field in PRICE_FIELDS:
        if field in data:
            value = data[field]
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValidationError(f"{field} must be a non-negative integer", details={field: value})


class ProductCatalog:
    """
    Product and category master data.

    Stock is never written here directly: creation, adjustment, counts and
    losses all go through the stock ledger so every change has a movement.
    """

    def __init__(self, db, stock_ledger):
        self.db = db
        self.stock = stock_ledger

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def create_category(self, name: str) -> Category:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Category name is required")
        with atomic(self.db):
            if self.db.session.query(Category.id).filter_by(name=name).first():
                raise ConflictError(f"Category {name} already exists", details={"name": name})
            category = Category(name=name)
            self.db.session.add(category)
        return category

    def list_categories(self) -> list[Category]:
        return self.db.session.query(Category).order_by(Category.name).all()

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def _ensure_unique_name(self, name: str, exclude_id: int | None = None) -> None:
        query = self.db.session.query(Product.id).filter(Product.name == name)
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        if query.first():
            raise ConflictError(f"Product {name} already exists", details={"name": name})

    def _ensure_category(self, category_id: int | None) -> None:
        if category_id is not None and self.db.session.get(Category, category_id) is None:
            raise NotFoundError("Category", category_id)

    def create_product(
        self,
        *,
        name: str,
        sale_price_cents: int,
        purchase_price_cents: int = 0,
        category_id: int | None = None,
        description: str | None = None,
        reorder_threshold: int = 0,
        initial_stock: int = 0,
        actor_id: int | None = None,
    ) -> Product:
        """Create a product. Initial stock is recorded as an `in` movement."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Product name is required")
        _check_non_negative({
            "sale_price_cents": sale_price_cents,
            "purchase_price_cents": purchase_price_cents,
            "reorder_threshold": reorder_threshold,
        })
        if not isinstance(initial_stock, int) or initial_stock < 0:
            raise ValidationError("initial_stock must be a non-negative integer", details={"initial_stock": initial_stock})

        with atomic(self.db):
            self._ensure_unique_name(name)
            self._ensure_category(category_id)
            product = Product(
                name=name,
                description=description,
                category_id=category_id,
                sale_price_cents=sale_price_cents,
                purchase_price_cents=purchase_price_cents,
                reorder_threshold=reorder_threshold,
                stock_actuel=0,
                is_active=True,
            )
            self.db.session.add(product)
            self.db.session.flush()
            if initial_stock:
                self.stock.record(
                    product,
                    MovementKind.IN,
                    initial_stock,
                    reason="initial stock",
                    actor_id=actor_id,
                )
        log.info("Product %s created (%s) with stock %d", product.id, name, initial_stock)
        return product

    def update_product(self, product_id: int, **changes) -> Product:
        """Update master data. Stock changes must go through the ledger."""
        if "stock_actuel" in changes:
            raise ValidationError(
                "Stock cannot be edited directly; record a stock movement instead",
                details={"field": "stock_actuel"},
            )
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError("Unknown product fields", details={"fields": sorted(unknown)})
        _check_non_negative(changes)

        with atomic(self.db):
            product = self.stock.lock_product(product_id)
            if "name" in changes:
                name = (changes["name"] or "").strip()
                if not name:
                    raise ValidationError("Product name is required")
                self._ensure_unique_name(name, exclude_id=product_id)
                changes["name"] = name
            if "category_id" in changes:
                self._ensure_category(changes["category_id"])
            for field, value in changes.items():
                setattr(product, field, value)
        return product

    def adjust_stock(
        self,
        product_id: int,
        delta: int,
        reason: str,
        actor_id: int | None = None,
        comment: str | None = None,
    ):
        """Signed manual correction."""
        if not reason or not reason.strip():
            raise ValidationError("An adjustment reason is required")
        return self.stock.apply_movement(
            product_id=product_id,
            kind=MovementKind.ADJUSTMENT,
            quantity=delta,
            reason=reason.strip(),
            actor_id=actor_id,
            comment=comment,
        )

    def record_count(self, product_id: int, counted: int, actor_id: int | None = None, comment: str | None = None):
        """
        Reconcile stock to a physical count.

        Returns the inventory_count movement, or None when the count matches.
        The difference is computed on the locked row.
        """
        if not isinstance(counted, int) or isinstance(counted, bool) or counted < 0:
            raise ValidationError("Counted quantity must be a non-negative integer", details={"counted": counted})
        with atomic(self.db):
            product = self.stock.lock_product(product_id)
            difference = counted - product.stock_actuel
            movement = None
            if difference:
                movement = self.stock.record(
                    product,
                    MovementKind.INVENTORY_COUNT,
                    difference,
                    reason=f"inventory count: {counted}",
                    actor_id=actor_id,
                    comment=comment,
                )
        if movement is not None:
            log.info("Inventory count on product %s: %+d", product_id, difference)
        return movement

    def record_loss(self, product_id: int, quantity: int, reason: str, actor_id: int | None = None):
        """Breakage, expiry, theft."""
        if not reason or not reason.strip():
            raise ValidationError("A loss reason is required")
        if not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("Loss quantity must be a positive integer", details={"quantity": quantity})
        return self.stock.apply_movement(
            product_id=product_id,
            kind=MovementKind.LOSS,
            quantity=quantity,
            reason=reason.strip(),
            actor_id=actor_id,
        )

    def archive_product(self, product_id: int) -> Product:
        """Hide a product from sale while keeping its history."""
        with atomic(self.db):
            product = self.stock.lock_product(product_id)
            product.is_active = False
        log.info("Product %s archived", product_id)
        return product

    def delete_product(self, product_id: int) -> None:
        """Hard delete. Refused once any movement, sale or order references the product."""
        with atomic(self.db):
            product = self.stock.lock_product(product_id)
            s = self.db.session
            references = {
                "stock_movements": s.query(StockMovement.id).filter_by(product_id=product_id).first(),
                "sale_lines": s.query(SaleLine.id).filter_by(product_id=product_id).first(),
                "supply_order_lines": s.query(SupplyOrderLine.id).filter_by(product_id=product_id).first(),
            }
            used = sorted(name for name, row in references.items() if row is not None)
            if used:
                raise ProductInUseError(
                    f"Product {product_id} is referenced and can only be archived",
                    details={"product_id": product_id, "referenced_by": used},
                )
            s.delete(product)
        log.info("Product %s deleted", product_id)

    def get_product(self, product_id: int) -> Product:
        product = self.db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    def list_products(self, filters=None, limit: int | None = None, offset: int | None = None):
        """Filters: category_id, is_active, search, stock_level."""
        level = (filters or {}).get("stock_level")
        if level is not None and level not in (StockLevel.OUT, StockLevel.CRITICAL, StockLevel.LOW, StockLevel.OK):
            raise ValidationError(f"Unknown stock level: {level}", details={"stock_level": level})
        query = self.db.session.query(Product).filter(*build_predicates(filters, PRODUCT_FILTERS))
        query = query.order_by(Product.name)
        return paginate(query, limit, offset)

    def stock_level(self, product_id: int) -> str:
        product = self.get_product(product_id)
        return stock_level(product.stock_actuel, product.reorder_threshold)

    def low_stock_products(self) -> list[Product]:
        """Active products at or below 1.5 x their reorder threshold, emptiest first."""
        stock, threshold = Product.stock_actuel, Product.reorder_threshold
        return (
            self.db.session.query(Product)
            .filter(Product.is_active.is_(True), stock * 2 <= threshold * 3)
            .order_by(stock, Product.name)
            .all()
        )
