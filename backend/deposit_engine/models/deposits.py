from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class DepositOrder(db.Model):
    """
    Deposit (layaway) order: partial payments against held inventory.

    amount_paid and balance_due are NOT stored. They are derived from
    DepositPayment rows (see payment_service) so concurrent payments never
    race on a mutable counter.

    Orders are never deleted; they end in exactly one terminal status.
    """
    __tablename__ = "deposit_orders"
    __table_args__ = (
        db.Index("ix_deposit_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Customer records live outside this engine; name is snapshotted
    customer_id = db.Column(db.Integer, nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    part_exchange_total_cents = db.Column(db.Integer, nullable=False, default=0)

    expected_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    location_id = db.Column(db.Integer, nullable=True, index=True)
    staff_user_id = db.Column(db.Integer, nullable=True, index=True)

    # Set on completion; sales.deposit_order_id carries the foreign key
    sale_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    expired_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by_user_id = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<DepositOrder id={self.id} status={self.status!r}>"

    @property
    def net_payable_cents(self) -> int:
        return self.total_amount_cents - self.part_exchange_total_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "part_exchange_total_cents": self.part_exchange_total_cents,
            "expected_date": self.expected_date.isoformat() if self.expected_date else None,
            "notes": self.notes,
            "location_id": self.location_id,
            "staff_user_id": self.staff_user_id,
            "sale_id": self.sale_id,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "voided_at": to_utc_z(self.voided_at),
            "expired_at": to_utc_z(self.expired_at),
            "closed_by_user_id": self.closed_by_user_id,
            "version_id": self.version_id,
        }


class DepositOrderItem(db.Model):
    """
    Line on a deposit order.

    Regular lines reference a catalog product and are reserved against stock.
    Custom lines (is_custom_order) carry only free text until completion
    materializes them into a product; product_id is filled in then.
    """
    __tablename__ = "deposit_order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    deposit_order_id = db.Column(db.Integer, db.ForeignKey("deposit_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=True)
    description = db.Column(db.Text, nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    # May stay unset until staff records it; margin reporting depends on it
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    is_custom_order = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship(
        "DepositOrder",
        backref=db.backref("items", lazy=True, order_by="DepositOrderItem.id"),
    )
    product = db.relationship("Product")

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    @property
    def holds_reservation(self) -> bool:
        return not self.is_custom_order and self.product_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "deposit_order_id": self.deposit_order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "category": self.category,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.line_total_cents,
            "is_custom_order": self.is_custom_order,
            "created_at": to_utc_z(self.created_at),
        }


class PartExchangeItem(db.Model):
    """
    Trade-in accepted as credit against the order.

    Not inventory until completion, which materializes it into a product
    and receives it into stock (product_id is set then).
    """
    __tablename__ = "part_exchange_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    deposit_order_id = db.Column(db.Integer, db.ForeignKey("deposit_orders.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=True)
    serial = db.Column(db.String(120), nullable=True)
    allowance_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship(
        "DepositOrder",
        backref=db.backref("part_exchanges", lazy=True, order_by="PartExchangeItem.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "deposit_order_id": self.deposit_order_id,
            "product_name": self.product_name,
            "category": self.category,
            "serial": self.serial,
            "allowance_cents": self.allowance_cents,
            "notes": self.notes,
            "product_id": self.product_id,
            "created_at": to_utc_z(self.created_at),
        }


class DepositPayment(db.Model):
    """
    Payment against a deposit order.

    IMMUTABLE: Records are never updated or deleted. The sum of an order's
    payments is its amount_paid.
    """
    __tablename__ = "deposit_payments"
    __table_args__ = (
        db.Index("ix_deposit_payments_order_created", "deposit_order_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    deposit_order_id = db.Column(db.Integer, db.ForeignKey("deposit_orders.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False, index=True)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    recorded_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    order = db.relationship(
        "DepositOrder",
        backref=db.backref("payments", lazy=True, order_by="DepositPayment.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "deposit_order_id": self.deposit_order_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "reference": self.reference,
            "notes": self.notes,
            "recorded_by_user_id": self.recorded_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
