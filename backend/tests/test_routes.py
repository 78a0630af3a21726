"""HTTP surface: status codes and JSON shapes of the ledger API."""

from clubledger.services import sales_service


def _sell(client, **body):
    return client.post("/api/transactions/", json=body)


def test_create_sale_returns_transaction(client, cola):
    response = _sell(client, payment_method="CASH", items=[{"article_id": cola.id, "quantity": "2"}])

    assert response.status_code == 201
    transaction = response.get_json()["transaction"]
    assert transaction["total_amount"] == "2.00"
    assert transaction["items"][0]["price_per_unit"] == "1.00"
    assert transaction["cancelled"] is False


def test_sale_errors_map_to_status_codes(client, cola, beer, alice):
    missing = _sell(client, payment_method="CASH", items=[{"article_id": 999, "quantity": "1"}])
    assert missing.status_code == 404
    assert missing.get_json()["code"] == "NOT_FOUND"

    invalid = _sell(client, payment_method="CARD", items=[{"article_id": cola.id, "quantity": "1"}])
    assert invalid.status_code == 400
    assert invalid.get_json()["code"] == "VALIDATION_FAILED"

    no_customer = _sell(client, payment_method="ACCOUNT", items=[{"article_id": cola.id, "quantity": "1"}])
    assert no_customer.status_code == 400

    stock = _sell(client, payment_method="CASH", items=[{"article_id": cola.id, "quantity": "11"}])
    assert stock.status_code == 422
    body = stock.get_json()
    assert body["code"] == "INSUFFICIENT_STOCK"
    assert body["details"]["available"] == "10.000"

    balance = _sell(
        client, payment_method="ACCOUNT", customer_id=alice.id, items=[{"article_id": beer.id, "quantity": "5"}]
    )
    assert balance.status_code == 422
    assert balance.get_json()["code"] == "INSUFFICIENT_BALANCE"


def test_float_amounts_are_rejected(client, cola):
    response = _sell(client, payment_method="CASH", items=[{"article_id": cola.id, "quantity": 1.5}])
    assert response.status_code == 400


def test_cancel_route_and_double_cancel(client, cola):
    sale = sales_service.create_sale("CASH", None, [{"article_id": cola.id, "quantity": 3}])

    first = client.post(f"/api/transactions/{sale.id}/cancel", json={"user_id": 2})
    assert first.status_code == 200
    body = first.get_json()
    assert body["original"]["cancelled"] is True
    assert body["refund"]["type"] == "REFUND"
    assert body["refund"]["total_amount"] == "-3.00"

    second = client.post(f"/api/transactions/{sale.id}/cancel")
    assert second.status_code == 409
    assert second.get_json()["code"] == "INVALID_STATE"

    detail = client.get(f"/api/transactions/{sale.id}").get_json()["transaction"]
    assert [r["id"] for r in detail["refunds"]] == [body["refund"]["id"]]


def test_unknown_transaction_is_404(client, db_session):
    assert client.get("/api/transactions/4242").status_code == 404
    assert client.post("/api/transactions/4242/cancel").status_code == 404


def test_stock_adjustment_route(client, cola):
    response = client.post(f"/api/articles/{cola.id}/stock", json={"delta": "-4", "reason": "Breakage"})
    assert response.status_code == 200
    assert response.get_json()["article"]["stock"] == "6.000"

    too_much = client.post(f"/api/articles/{cola.id}/stock", json={"delta": "-7", "reason": "Breakage"})
    assert too_much.status_code == 422

    movements = client.get(f"/api/articles/{cola.id}/movements").get_json()["movements"]
    assert movements[0]["quantity"] == "-4.000"
    assert movements[0]["reason"] == "Breakage"


def test_top_up_route(client, alice):
    response = client.post(f"/api/customers/{alice.id}/top-up", json={"amount": "5.50", "method": "TRANSFER"})
    assert response.status_code == 201
    assert response.get_json()["customer"]["balance"] == "15.50"

    assert client.post(f"/api/customers/{alice.id}/top-up", json={"amount": "0"}).status_code == 400


def test_highscore_route(client, cola, alice):
    sales_service.create_sale("ACCOUNT", alice.id, [{"article_id": cola.id, "quantity": 2}])

    response = client.get("/api/highscore/?type=DAILY&mode=AMOUNT")
    assert response.status_code == 200
    board = response.get_json()
    assert board["entries"][0]["customer_name"] == "Alice"
    assert board["entries"][0]["score"] == "2.00"

    assert client.get("/api/highscore/?type=WEEKLY").status_code == 400


def test_reports_routes(client, cola):
    sales_service.create_sale("CASH", None, [{"article_id": cola.id, "quantity": 1}])

    summary = client.get("/api/reports/daily-summary")
    assert summary.status_code == 200
    assert summary.get_json()["summary"]["total_revenue"] == "1.00"

    assert client.get("/api/reports/daily-summary?date=not-a-date").status_code == 400
    assert client.get("/api/reports/profit-loss?start_date=2026-02-01&end_date=2026-01-01").status_code == 400


def test_fiscal_close_route(client, db_session):
    created = client.post(
        "/api/accounting/fiscal-years",
        json={"name": "FY 2025", "start_date": "2025-01-01", "end_date": "2025-12-31"},
    )
    assert created.status_code == 201
    fiscal_year_id = created.get_json()["fiscal_year"]["id"]

    closed = client.post(f"/api/accounting/fiscal-years/{fiscal_year_id}/close", json={"cash_on_hand": "12.00"})
    assert closed.status_code == 201
    assert closed.get_json()["report"]["cash_on_hand"] == "12.00"

    again = client.post(f"/api/accounting/fiscal-years/{fiscal_year_id}/close", json={})
    assert again.status_code == 409

    report = client.get(f"/api/accounting/fiscal-years/{fiscal_year_id}/report")
    assert report.status_code == 200
    assert report.get_json()["fiscal_year"]["closed"] is True


def test_health(client, cola):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["stock_ledger"]["status"] == "healthy"


def test_audit_route_filters_by_entity(client, cola):
    sale = sales_service.create_sale("CASH", None, [{"article_id": cola.id, "quantity": 1}])

    response = client.get(f"/api/accounting/audit?entity_type=Transaction&entity_id={sale.id}")
    assert response.status_code == 200
    entries = response.get_json()["entries"]
    assert [e["action"] for e in entries] == ["SALE_CREATED"]
    assert entries[0]["changes"]["total_amount"] == "1.00"
