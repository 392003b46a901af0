from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog product.

    Stock is never stored here: on-hand and available quantities are derived
    from StockMovement rows (see stock_ledger_service).

    ORIGIN FLAGS:
    - is_custom: materialized from a custom deposit order line at completion
    - is_trade_in: materialized from a part-exchange at completion
    - is_consignment: sold on behalf of a supplier; completion owes them a payout
      and therefore requires consignment_supplier_id
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=True)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=True)
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_custom = db.Column(db.Boolean, nullable=False, default=False)
    is_trade_in = db.Column(db.Boolean, nullable=False, default=False)
    is_consignment = db.Column(db.Boolean, nullable=False, default=False)

    # Supplier records live outside this engine; plain reference only
    consignment_supplier_id = db.Column(db.Integer, nullable=True, index=True)

    created_from_deposit_order_id = db.Column(
        db.Integer, db.ForeignKey("deposit_orders.id"), nullable=True, index=True
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "price_cents": self.price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "is_active": self.is_active,
            "is_custom": self.is_custom,
            "is_trade_in": self.is_trade_in,
            "is_consignment": self.is_consignment,
            "consignment_supplier_id": self.consignment_supplier_id,
            "created_from_deposit_order_id": self.created_from_deposit_order_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only stock ledger entry.

    quantity_delta is signed. reserve/release rows move availability only;
    every other type moves on-hand. deposit_order_id and sale_id are
    provenance back-references, not ownership.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_type", "product_id", "movement_type"),
        db.Index("ix_stock_movements_order_product", "deposit_order_id", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(32), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)

    unit_cost_cents = db.Column(db.Integer, nullable=True)

    deposit_order_id = db.Column(db.Integer, db.ForeignKey("deposit_orders.id"), nullable=True, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    note = db.Column(db.String(255), nullable=True)
    actor_user_id = db.Column(db.Integer, nullable=True)

    occurred_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "unit_cost_cents": self.unit_cost_cents,
            "deposit_order_id": self.deposit_order_id,
            "sale_id": self.sale_id,
            "note": self.note,
            "actor_user_id": self.actor_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }
