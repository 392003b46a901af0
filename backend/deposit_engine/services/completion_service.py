# Overview: Order completion orchestrator; fans a paid deposit order out into products, movements, a sale, and settlements.

"""
Order Completion Orchestrator

================================================================================
PURPOSE: Convert one ACTIVE, fully paid deposit order into a finalized sale
================================================================================

PIPELINE (pure construction, nothing written):
    1. build_product_drafts     custom lines + part-exchanges -> new products
    2. build_movement_drafts    catalog line:  release +q, sale -q
                                custom line:   purchase +q, sale -q
                                part-exchange: purchase +1 (allowance as cost)
    3. build_sale_draft         one sale at the order's net total
    4. build_sale_item_drafts   one sale item per order line
    5. build_settlement_drafts  one payout per consigned catalog line

plan_completion() runs every step and raises before anything is written, so a
MissingAttributionError leaves the order untouched and completable later.

APPLY ORDER (apply_completion_plan):
    products -> sale -> movements -> sale items -> settlements

Products come first because movements and sale items reference their ids.
Settlements come last because they reference the sale and its items.

The caller (deposit_service.complete_deposit_order) owns the transaction and
flips the order status only after this returns.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from ..extensions import db
from ..errors import InvalidStateError, MissingAttributionError, NotFoundError
from ..models import (
    ConsignmentSettlement,
    DepositOrder,
    DepositOrderItem,
    PartExchangeItem,
    Product,
    Sale,
    SaleItem,
    StockMovement,
)
from .document_service import next_document_number
from .stock_ledger_service import (
    MOVEMENT_PURCHASE,
    MOVEMENT_RELEASE,
    MOVEMENT_SALE,
    record_movement,
)


# A product reference is either an existing catalog id or the key of a draft
# product that only gets an id when the plan is applied.
DraftKey = tuple[str, int]
ProductRef = Union[int, DraftKey]

SETTLEMENT_UNPAID = "UNPAID"

CUSTOM_SKU_PREFIX = "CUS"
TRADE_IN_SKU_PREFIX = "PX"
SALE_NUMBER_PREFIX = "S"


@dataclass(frozen=True)
class ProductDraft:
    key: DraftKey
    sku_prefix: str
    name: str
    category: str | None
    description: str | None
    price_cents: int | None
    unit_cost_cents: int | None
    is_custom: bool = False
    is_trade_in: bool = False


@dataclass(frozen=True)
class MovementDraft:
    product_ref: ProductRef
    movement_type: str
    quantity_delta: int
    note: str
    unit_cost_cents: int | None = None


@dataclass(frozen=True)
class SaleDraft:
    customer_id: int | None
    customer_name: str
    subtotal_cents: int
    part_exchange_total_cents: int
    total_cents: int
    location_id: int | None
    notes: str


@dataclass(frozen=True)
class SaleItemDraft:
    deposit_order_item_id: int
    product_ref: ProductRef
    quantity: int
    unit_price_cents: int
    unit_cost_cents: int | None
    line_total_cents: int


@dataclass(frozen=True)
class SettlementDraft:
    deposit_order_item_id: int
    product_id: int
    supplier_id: int
    sale_price_cents: int
    payout_amount_cents: int
    shop_share_cents: int


@dataclass(frozen=True)
class CompletionPlan:
    order_id: int
    products: tuple[ProductDraft, ...]
    sale: SaleDraft
    movements: tuple[MovementDraft, ...]
    sale_items: tuple[SaleItemDraft, ...]
    settlements: tuple[SettlementDraft, ...]


# =============================================================================
# PURE CONSTRUCTION STEPS
# =============================================================================

def _item_key(item: DepositOrderItem) -> DraftKey:
    return ("item", item.id)


def _px_key(px: PartExchangeItem) -> DraftKey:
    return ("px", px.id)


def _product_ref(item: DepositOrderItem) -> ProductRef:
    return _item_key(item) if item.is_custom_order else item.product_id


def build_product_drafts(
    items: list[DepositOrderItem], part_exchanges: list[PartExchangeItem]
) -> list[ProductDraft]:
    drafts = [
        ProductDraft(
            key=_item_key(item),
            sku_prefix=CUSTOM_SKU_PREFIX,
            name=item.product_name,
            category=item.category,
            description=item.description,
            price_cents=item.unit_price_cents,
            unit_cost_cents=item.unit_cost_cents,
            is_custom=True,
        )
        for item in items
        if item.is_custom_order
    ]
    for px in part_exchanges:
        description = px.notes
        if px.serial:
            description = f"Serial: {px.serial}" + (f"\n{px.notes}" if px.notes else "")
        drafts.append(
            ProductDraft(
                key=_px_key(px),
                sku_prefix=TRADE_IN_SKU_PREFIX,
                name=px.product_name,
                category=px.category,
                description=description,
                price_cents=None,
                unit_cost_cents=px.allowance_cents,
                is_trade_in=True,
            )
        )
    return drafts


def build_movement_drafts(
    order: DepositOrder,
    items: list[DepositOrderItem],
    part_exchanges: list[PartExchangeItem],
) -> list[MovementDraft]:
    drafts: list[MovementDraft] = []
    for item in items:
        ref = _product_ref(item)
        if item.is_custom_order:
            drafts.append(MovementDraft(
                product_ref=ref,
                movement_type=MOVEMENT_PURCHASE,
                quantity_delta=item.quantity,
                unit_cost_cents=item.unit_cost_cents,
                note=f"Custom order received for Deposit Order #{order.id}",
            ))
        else:
            drafts.append(MovementDraft(
                product_ref=ref,
                movement_type=MOVEMENT_RELEASE,
                quantity_delta=item.quantity,
                note=f"Deposit Order #{order.id} completed",
            ))
        drafts.append(MovementDraft(
            product_ref=ref,
            movement_type=MOVEMENT_SALE,
            quantity_delta=-item.quantity,
            note=f"Sold via Deposit Order #{order.id}",
        ))

    for px in part_exchanges:
        drafts.append(MovementDraft(
            product_ref=_px_key(px),
            movement_type=MOVEMENT_PURCHASE,
            quantity_delta=1,
            unit_cost_cents=px.allowance_cents,
            note=f"Part exchange on Deposit Order #{order.id}",
        ))
    return drafts


def build_sale_draft(order: DepositOrder) -> SaleDraft:
    return SaleDraft(
        customer_id=order.customer_id,
        customer_name=order.customer_name,
        subtotal_cents=order.total_amount_cents,
        part_exchange_total_cents=order.part_exchange_total_cents,
        total_cents=order.net_payable_cents,
        location_id=order.location_id,
        notes=f"Converted from Deposit Order #{order.id}",
    )


def build_sale_item_drafts(
    items: list[DepositOrderItem], products: dict[int, Product]
) -> list[SaleItemDraft]:
    drafts = []
    for item in items:
        unit_cost = item.unit_cost_cents
        if unit_cost is None and not item.is_custom_order:
            unit_cost = products[item.product_id].unit_cost_cents
        drafts.append(SaleItemDraft(
            deposit_order_item_id=item.id,
            product_ref=_product_ref(item),
            quantity=item.quantity,
            unit_price_cents=item.unit_price_cents,
            unit_cost_cents=unit_cost,
            line_total_cents=item.line_total_cents,
        ))
    return drafts


def build_settlement_drafts(
    items: list[DepositOrderItem], products: dict[int, Product]
) -> list[SettlementDraft]:
    """
    One payout per consigned catalog line.

    payout = (product cost, else line cost) x quantity; the shop keeps the rest.
    A consigned product without a supplier or without any cost cannot be paid
    out, so the whole completion is refused.
    """
    drafts = []
    for item in items:
        if item.is_custom_order:
            continue
        product = products[item.product_id]
        if not product.is_consignment:
            continue

        if product.consignment_supplier_id is None:
            raise MissingAttributionError(
                f"Consignment product {product.name} has no consignment supplier",
                details={"product_id": product.id, "deposit_order_item_id": item.id},
            )

        unit_cost = product.unit_cost_cents
        if unit_cost is None:
            unit_cost = item.unit_cost_cents
        if unit_cost is None:
            raise MissingAttributionError(
                f"Consignment product {product.name} has no payout cost",
                details={"product_id": product.id, "deposit_order_item_id": item.id},
            )

        sale_price = item.line_total_cents
        payout = unit_cost * item.quantity
        drafts.append(SettlementDraft(
            deposit_order_item_id=item.id,
            product_id=product.id,
            supplier_id=product.consignment_supplier_id,
            sale_price_cents=sale_price,
            payout_amount_cents=payout,
            shop_share_cents=sale_price - payout,
        ))
    return drafts


def plan_completion(
    order: DepositOrder,
    items: list[DepositOrderItem],
    part_exchanges: list[PartExchangeItem],
    products: dict[int, Product],
) -> CompletionPlan:
    """Run every construction step; raises before any write if one fails."""
    return CompletionPlan(
        order_id=order.id,
        products=tuple(build_product_drafts(items, part_exchanges)),
        sale=build_sale_draft(order),
        movements=tuple(build_movement_drafts(order, items, part_exchanges)),
        sale_items=tuple(build_sale_item_drafts(items, products)),
        settlements=tuple(build_settlement_drafts(items, products)),
    )


# =============================================================================
# APPLY
# =============================================================================

def _load_catalog_products(items: list[DepositOrderItem]) -> dict[int, Product]:
    products: dict[int, Product] = {}
    for item in items:
        if item.is_custom_order:
            continue
        product = db.session.get(Product, item.product_id)
        if product is None:
            raise NotFoundError(
                f"Product {item.product_id} not found",
                details={"entity": "product", "id": item.product_id},
            )
        products[product.id] = product
    return products


def apply_completion_plan(
    plan: CompletionPlan,
    order: DepositOrder,
    items: list[DepositOrderItem],
    part_exchanges: list[PartExchangeItem],
    *,
    actor_user_id: int | None = None,
) -> Sale:
    """Write a validated plan in dependency order (no commit)."""
    product_ids: dict[DraftKey, int] = {}
    for draft in plan.products:
        product = Product(
            sku=next_document_number(document_type=f"SKU_{draft.sku_prefix}", prefix=draft.sku_prefix),
            name=draft.name,
            category=draft.category,
            description=draft.description,
            price_cents=draft.price_cents,
            unit_cost_cents=draft.unit_cost_cents,
            is_custom=draft.is_custom,
            is_trade_in=draft.is_trade_in,
            created_from_deposit_order_id=order.id,
        )
        db.session.add(product)
        db.session.flush()
        product_ids[draft.key] = product.id

    def resolve(ref: ProductRef) -> int:
        return product_ids[ref] if isinstance(ref, tuple) else ref

    for item in items:
        if item.is_custom_order:
            item.product_id = product_ids[_item_key(item)]
    for px in part_exchanges:
        px.product_id = product_ids[_px_key(px)]

    sale = Sale(
        document_number=next_document_number(document_type="SALE", prefix=SALE_NUMBER_PREFIX),
        deposit_order_id=order.id,
        customer_id=plan.sale.customer_id,
        customer_name=plan.sale.customer_name,
        subtotal_cents=plan.sale.subtotal_cents,
        part_exchange_total_cents=plan.sale.part_exchange_total_cents,
        total_cents=plan.sale.total_cents,
        location_id=plan.sale.location_id,
        created_by_user_id=actor_user_id,
        notes=plan.sale.notes,
    )
    db.session.add(sale)
    db.session.flush()

    movements: list[StockMovement] = []
    for draft in plan.movements:
        movements.append(record_movement(
            resolve(draft.product_ref),
            draft.quantity_delta,
            draft.movement_type,
            deposit_order_id=order.id,
            sale_id=sale.id,
            unit_cost_cents=draft.unit_cost_cents,
            note=draft.note,
            actor_user_id=actor_user_id,
        ))

    sale_items_by_line: dict[int, SaleItem] = {}
    for draft in plan.sale_items:
        sale_item = SaleItem(
            sale_id=sale.id,
            product_id=resolve(draft.product_ref),
            deposit_order_item_id=draft.deposit_order_item_id,
            quantity=draft.quantity,
            unit_price_cents=draft.unit_price_cents,
            unit_cost_cents=draft.unit_cost_cents,
            line_total_cents=draft.line_total_cents,
        )
        db.session.add(sale_item)
        sale_items_by_line[draft.deposit_order_item_id] = sale_item
    db.session.flush()

    for draft in plan.settlements:
        db.session.add(ConsignmentSettlement(
            sale_id=sale.id,
            sale_item_id=sale_items_by_line[draft.deposit_order_item_id].id,
            product_id=draft.product_id,
            supplier_id=draft.supplier_id,
            sale_price_cents=draft.sale_price_cents,
            payout_amount_cents=draft.payout_amount_cents,
            shop_share_cents=draft.shop_share_cents,
            payment_status=SETTLEMENT_UNPAID,
        ))
    db.session.flush()

    return sale


def complete_order(order: DepositOrder, *, actor_user_id: int | None = None) -> Sale:
    """
    Fan out a locked, active, fully paid order. The caller flips its status.

    Raises:
        InvalidStateError: a sale already exists for this order
        MissingAttributionError: consigned product without supplier or cost
        NotFoundError: a catalog line's product is gone
    """
    existing = db.session.query(Sale).filter_by(deposit_order_id=order.id).first()
    if existing is not None:
        raise InvalidStateError(
            f"Deposit order {order.id} already has sale {existing.document_number}; reconcile before completing",
            details={
                "order_id": order.id,
                "status": order.status,
                "event": "complete",
                "sale_id": existing.id,
            },
        )

    items = list(order.items)
    part_exchanges = list(order.part_exchanges)
    products = _load_catalog_products(items)

    plan = plan_completion(order, items, part_exchanges, products)
    return apply_completion_plan(plan, order, items, part_exchanges, actor_user_id=actor_user_id)


# =============================================================================
# SALE & SETTLEMENT READS
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"entity": "sale", "id": sale_id})
    return sale


def list_unpaid_settlements(supplier_id: int | None = None) -> list[ConsignmentSettlement]:
    q = db.session.query(ConsignmentSettlement).filter_by(payment_status=SETTLEMENT_UNPAID)
    if supplier_id is not None:
        q = q.filter_by(supplier_id=supplier_id)
    return q.order_by(ConsignmentSettlement.id).all()
