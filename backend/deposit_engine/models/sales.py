from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Sale(db.Model):
    """
    Finalized sale produced by completing a deposit order.

    At most one sale exists per deposit order (unique deposit_order_id), so a
    retried completion can never double-book revenue.

    total_cents is the net amount: subtotal minus part-exchange credit.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("deposit_order_id", name="uq_sales_deposit_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable document number (e.g., "S-000123")
    document_number = db.Column(db.String(64), nullable=False, unique=True)

    deposit_order_id = db.Column(db.Integer, db.ForeignKey("deposit_orders.id"), nullable=True)

    customer_id = db.Column(db.Integer, nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    part_exchange_total_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    location_id = db.Column(db.Integer, nullable=True, index=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    deposit_order = db.relationship("DepositOrder", foreign_keys=[deposit_order_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "deposit_order_id": self.deposit_order_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "subtotal_cents": self.subtotal_cents,
            "part_exchange_total_cents": self.part_exchange_total_cents,
            "total_cents": self.total_cents,
            "location_id": self.location_id,
            "created_by_user_id": self.created_by_user_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class SaleItem(db.Model):
    """Individual line items on a sale."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    deposit_order_item_id = db.Column(db.Integer, db.ForeignKey("deposit_order_items.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=True)
    line_total_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", backref=db.backref("items", lazy=True, order_by="SaleItem.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "deposit_order_item_id": self.deposit_order_item_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.line_total_cents,
        }


class ConsignmentSettlement(db.Model):
    """
    Payout owed to the consignor of a product sold on their behalf.

    PAYMENT STATUS:
    - UNPAID: created at sale time
    - PAID: payout recorded (outside this engine)
    """
    __tablename__ = "consignment_settlements"
    __table_args__ = (
        db.Index("ix_consignment_settlements_supplier_status", "supplier_id", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=False, unique=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, nullable=False)

    sale_price_cents = db.Column(db.Integer, nullable=False)
    payout_amount_cents = db.Column(db.Integer, nullable=False)
    shop_share_cents = db.Column(db.Integer, nullable=False)

    payment_status = db.Column(db.String(16), nullable=False, default="UNPAID", index=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("consignment_settlements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "sale_item_id": self.sale_item_id,
            "product_id": self.product_id,
            "supplier_id": self.supplier_id,
            "sale_price_cents": self.sale_price_cents,
            "payout_amount_cents": self.payout_amount_cents,
            "shop_share_cents": self.shop_share_cents,
            "payment_status": self.payment_status,
            "paid_at": to_utc_z(self.paid_at),
            "created_at": to_utc_z(self.created_at),
        }
