from deposit_engine.services import deposit_service, reservation_service

from conftest import catalog_item


def test_stock_receive_and_show(app, product):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["stock", "receive", "--product-id", str(product.id), "--quantity", "3"])
    assert result.exit_code == 0, result.output
    assert "on hand 8" in result.output

    result = runner.invoke(args=["stock", "show", "--product-id", str(product.id)])
    assert result.exit_code == 0
    assert "available: 8" in result.output


def test_stock_show_unknown_product(app, db_session):
    result = app.test_cli_runner().invoke(args=["stock", "show", "--product-id", "999"])
    assert result.exit_code != 0
    assert "not found" in result.output


def test_deposits_list_and_expire_overdue(app, product):
    order = deposit_service.create_deposit_order(
        customer_name="Jane Smith",
        items=[catalog_item(product.id)],
        expected_date="2026-01-15",
    )
    runner = app.test_cli_runner()

    result = runner.invoke(args=["deposits", "list", "--status", "active"])
    assert result.exit_code == 0
    assert "Jane Smith" in result.output

    result = runner.invoke(args=["deposits", "expire-overdue", "--as-of", "2026-03-01", "--grace-days", "30"])
    assert result.exit_code == 0, result.output
    assert f"Expired 1 order(s): {order.id}" in result.output
    assert deposit_service.get_order(order.id).status == "expired"


def test_reconcile_exit_codes(app, db_session, product):
    runner = app.test_cli_runner()
    assert runner.invoke(args=["deposits", "reconcile"]).exit_code == 0

    order = deposit_service.create_deposit_order(customer_name="A", items=[catalog_item(product.id)])
    deposit_service.cancel_deposit_order(order.id)
    reservation_service.release(product.id, 1, order.id)
    db_session.commit()

    result = runner.invoke(args=["deposits", "reconcile"])
    assert result.exit_code == 1
    assert "over_released" in result.output
