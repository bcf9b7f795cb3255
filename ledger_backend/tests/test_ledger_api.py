"""
Integration tests for the ledger HTTP API.

Covers status codes, error envelopes, role guards, token revocation and
the payable/receivable route split.
"""

import pytest
from datetime import date, timedelta

from ledger_backend.app.core.token_revocation import revoke_all_user_tokens, revoke_token

PAYABLES = "/v1/accounts-payable"
RECEIVABLES = "/v1/accounts-receivable"


def payable_payload(supplier_id, **overrides):
    payload = {
        "supplier_id": supplier_id,
        "invoice_number": "NF-9001",
        "original_amount": "1000.00",
        "issue_date": "2029-12-01",
        "due_date": "2030-01-10",
    }
    payload.update(overrides)
    return payload


async def create_payable(client, headers, supplier_id, **overrides):
    response = await client.post(PAYABLES, json=payable_payload(supplier_id, **overrides), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


# Health and authentication

@pytest.mark.asyncio
async def test_health_check(client):
    response = await client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["redis"] == "up"


@pytest.mark.asyncio
async def test_missing_token_is_401(client):
    response = await client.get(PAYABLES)
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_AUTH_001"
    assert response.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_garbage_token_is_401(client):
    response = await client.get(PAYABLES, headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_revoked_token_is_401(client, accountant_headers):
    token = accountant_headers["Authorization"].split(" ", 1)[1]
    assert (await client.get(PAYABLES, headers=accountant_headers)).status_code == 200

    assert await revoke_token(token, 10)

    response = await client.get(PAYABLES, headers=accountant_headers)
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_AUTH_002"


@pytest.mark.asyncio
async def test_blocked_user_loses_access(client, manager_headers):
    assert await revoke_all_user_tokens(20)

    response = await client.get(PAYABLES, headers=manager_headers)
    assert response.status_code == 401


# Record lifecycle

@pytest.mark.asyncio
async def test_create_returns_location(client, supplier, accountant_headers):
    response = await client.post(
        PAYABLES, json=payable_payload(supplier.id, discount_amount="50.00"), headers=accountant_headers
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "PENDING"
    assert body["net_amount"] == "950.00"
    assert body["counterparty_id"] == supplier.id
    assert body["created_by_user_id"] == 10
    assert response.headers["location"] == f"{PAYABLES}/{body['id']}"

    fetched = await client.get(response.headers["location"], headers=accountant_headers)
    assert fetched.status_code == 200
    assert fetched.json()["invoice_number"] == "NF-9001"


@pytest.mark.asyncio
async def test_viewer_cannot_create(client, supplier, viewer_headers):
    response = await client.post(PAYABLES, json=payable_payload(supplier.id), headers=viewer_headers)
    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_PERM_001"


@pytest.mark.asyncio
async def test_viewer_can_read(client, supplier, accountant_headers, viewer_headers):
    created = await create_payable(client, accountant_headers, supplier.id)
    response = await client.get(f"{PAYABLES}/{created['id']}", headers=viewer_headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_create_for_unknown_supplier_is_404(client, accountant_headers):
    response = await client.post(PAYABLES, json=payable_payload(999), headers=accountant_headers)
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND_001"


@pytest.mark.asyncio
async def test_create_for_inactive_supplier_is_400(client, inactive_supplier, accountant_headers):
    response = await client.post(PAYABLES, json=payable_payload(inactive_supplier.id), headers=accountant_headers)
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_VALIDATION_001"


@pytest.mark.asyncio
async def test_create_with_negative_net_is_400(client, supplier, accountant_headers):
    response = await client.post(
        PAYABLES, json=payable_payload(supplier.id, discount_amount="1500.00"), headers=accountant_headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_create_without_due_date_is_422(client, supplier, accountant_headers):
    payload = payable_payload(supplier.id)
    del payload["due_date"]
    response = await client.post(PAYABLES, json=payload, headers=accountant_headers)
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_unknown_record_is_404(client, accountant_headers):
    response = await client.get(f"{PAYABLES}/4040", headers=accountant_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_update_cannot_move_due_date(client, supplier, accountant_headers):
    created = await create_payable(client, accountant_headers, supplier.id)
    response = await client.put(
        f"{PAYABLES}/{created['id']}", json={"due_date": "2031-01-01"}, headers=accountant_headers
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_update_recomputes_net(client, supplier, accountant_headers):
    created = await create_payable(client, accountant_headers, supplier.id)
    response = await client.put(
        f"{PAYABLES}/{created['id']}",
        json={"original_amount": "1200.00", "interest_amount": "12.00"},
        headers=accountant_headers,
    )
    assert response.status_code == 200
    assert response.json()["net_amount"] == "1212.00"
    assert response.json()["version"] == created["version"] + 1


@pytest.mark.asyncio
async def test_delete_requires_approver(client, supplier, accountant_headers, manager_headers):
    created = await create_payable(client, accountant_headers, supplier.id)
    url = f"{PAYABLES}/{created['id']}"

    assert (await client.delete(url, headers=accountant_headers)).status_code == 403
    assert (await client.delete(url, headers=manager_headers)).status_code == 204
    assert (await client.get(url, headers=manager_headers)).status_code == 404


@pytest.mark.asyncio
async def test_cancel_with_and_without_reason(client, supplier, accountant_headers, manager_headers):
    first = await create_payable(client, accountant_headers, supplier.id)
    second = await create_payable(client, accountant_headers, supplier.id)

    response = await client.post(f"{PAYABLES}/{first['id']}/cancel", headers=manager_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"

    response = await client.post(
        f"{PAYABLES}/{second['id']}/cancel", json={"reason": "Duplicate invoice"}, headers=manager_headers
    )
    assert response.status_code == 200
    assert "Duplicate invoice" in response.json()["internal_notes"]

    response = await client.post(f"{PAYABLES}/{second['id']}/cancel", headers=manager_headers)
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_STATE_001"


# Payments

@pytest.mark.asyncio
async def test_partial_then_full_payment(client, supplier, accountant_headers):
    created = await create_payable(client, accountant_headers, supplier.id)
    url = f"{PAYABLES}/{created['id']}/pay"

    response = await client.post(url, json={"amount": "600.00", "payment_method": "PIX"}, headers=accountant_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "PARTIALLY_PAID"
    assert response.json()["remaining_amount"] == "400.00"

    response = await client.post(url, json={"amount": "500.00", "payment_method": "PIX"}, headers=accountant_headers)
    assert response.status_code == 400
    assert response.json()["details"]["remaining_amount"] == "400.00"

    response = await client.post(
        url, json={"amount": "400.00", "payment_method": "PIX", "payment_date": "2030-01-09"}, headers=accountant_headers
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "PAID"
    assert body["payment_date"] == "2030-01-09"
    assert body["settled_by_user_id"] == 10

    history = await client.get(f"{PAYABLES}/{created['id']}/payments", headers=accountant_headers)
    assert [entry["amount"] for entry in history.json()] == ["600.00", "400.00"]

    response = await client.post(url, json={"amount": "1.00", "payment_method": "PIX"}, headers=accountant_headers)
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_STATE_001"


@pytest.mark.asyncio
async def test_payable_has_no_receive_route(client, supplier, accountant_headers):
    created = await create_payable(client, accountant_headers, supplier.id)
    response = await client.post(
        f"{PAYABLES}/{created['id']}/receive", json={"amount": "10.00", "payment_method": "PIX"},
        headers=accountant_headers,
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_receivable_is_received(client, customer, accountant_headers):
    response = await client.post(
        RECEIVABLES,
        json={"customer_id": customer.id, "original_amount": "250.00", "due_date": "2030-02-01"},
        headers=accountant_headers,
    )
    assert response.status_code == 201
    record = response.json()
    assert response.headers["location"] == f"{RECEIVABLES}/{record['id']}"

    wrong_verb = await client.post(
        f"{RECEIVABLES}/{record['id']}/pay", json={"amount": "250.00", "payment_method": "CASH"},
        headers=accountant_headers,
    )
    assert wrong_verb.status_code == 404

    response = await client.post(
        f"{RECEIVABLES}/{record['id']}/receive", json={"amount": "250.00", "payment_method": "CASH"},
        headers=accountant_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "PAID"


@pytest.mark.asyncio
async def test_approval_gate_over_http(client, supplier, accountant_headers, manager_headers):
    created = await create_payable(client, accountant_headers, supplier.id, original_amount="6000.00")
    assert created["requires_approval"] is True
    assert created["is_approved"] is False

    pay = {"amount": "6000.00", "payment_method": "BANK_TRANSFER"}
    response = await client.post(f"{PAYABLES}/{created['id']}/pay", json=pay, headers=accountant_headers)
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_APPROVAL_001"

    response = await client.post(f"{PAYABLES}/{created['id']}/approve", headers=accountant_headers)
    assert response.status_code == 403

    response = await client.post(
        f"{PAYABLES}/{created['id']}/approve", json={"notes": "Within budget"}, headers=manager_headers
    )
    assert response.status_code == 200
    assert response.json()["is_approved"] is True
    assert response.json()["approved_by_user_id"] == 20

    pending = await client.get(f"{PAYABLES}/pending-approval", headers=accountant_headers)
    assert pending.json() == []

    response = await client.post(f"{PAYABLES}/{created['id']}/pay", json=pay, headers=accountant_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "PAID"


# Installments

@pytest.mark.asyncio
async def test_generate_installments(client, supplier, accountant_headers):
    created = await create_payable(client, accountant_headers, supplier.id, original_amount="300.00")

    response = await client.post(
        f"{PAYABLES}/{created['id']}/installments", json={"count": 3}, headers=accountant_headers
    )
    assert response.status_code == 201
    plan = response.json()
    assert plan["base_record_id"] == created["id"]
    assert [i["invoice_number"] for i in plan["installments"]] == ["NF-9001/1", "NF-9001/2", "NF-9001/3"]
    assert [i["due_date"] for i in plan["installments"]] == ["2030-01-10", "2030-02-10", "2030-03-10"]

    base = await client.get(f"{PAYABLES}/{created['id']}", headers=accountant_headers)
    assert base.json()["status"] == "CANCELLED"

    listed = await client.get(f"{PAYABLES}/{created['id']}/installments", headers=accountant_headers)
    assert [i["id"] for i in listed.json()] == [i["id"] for i in plan["installments"]]


@pytest.mark.asyncio
async def test_single_installment_is_400(client, supplier, accountant_headers):
    created = await create_payable(client, accountant_headers, supplier.id)
    response = await client.post(
        f"{PAYABLES}/{created['id']}/installments", json={"count": 1}, headers=accountant_headers
    )
    assert response.status_code == 400


# Sweep, listings and totals

@pytest.mark.asyncio
async def test_manual_sweep(client, supplier, accountant_headers, manager_headers):
    created = await create_payable(client, accountant_headers, supplier.id, issue_date="2024-12-01", due_date="2025-01-10")

    response = await client.post(f"{PAYABLES}/update-overdue-status?as_of=2025-02-01", headers=accountant_headers)
    assert response.status_code == 403

    response = await client.post(f"{PAYABLES}/update-overdue-status?as_of=2025-02-01", headers=manager_headers)
    assert response.status_code == 200
    assert response.json() == {"transitioned": 1}

    response = await client.post(f"{PAYABLES}/update-overdue-status?as_of=2025-02-01", headers=manager_headers)
    assert response.json() == {"transitioned": 0}

    overdue = await client.get(f"{PAYABLES}/overdue", headers=accountant_headers)
    assert [r["id"] for r in overdue.json()] == [created["id"]]
    assert overdue.json()[0]["days_overdue"] > 0


@pytest.mark.asyncio
async def test_search_listing(client, supplier, accountant_headers):
    await create_payable(client, accountant_headers, supplier.id, invoice_number="NF-1")
    await create_payable(client, accountant_headers, supplier.id, invoice_number="NF-2", original_amount="20.00")

    response = await client.get(
        PAYABLES, params={"status": "PENDING", "sort_by": "amount", "sort_desc": "false"}, headers=accountant_headers
    )
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert [r["invoice_number"] for r in body["items"]] == ["NF-2", "NF-1"]

    response = await client.get(PAYABLES, params={"sort_by": "secret"}, headers=accountant_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_due_soon_listing(client, supplier, accountant_headers):
    soon = (date.today() + timedelta(days=3)).isoformat()
    later = (date.today() + timedelta(days=60)).isoformat()
    await create_payable(client, accountant_headers, supplier.id, issue_date=date.today().isoformat(), due_date=soon)
    await create_payable(client, accountant_headers, supplier.id, issue_date=date.today().isoformat(), due_date=later)

    response = await client.get(f"{PAYABLES}/due-soon", params={"days": 7}, headers=accountant_headers)
    assert response.status_code == 200
    assert [r["due_date"] for r in response.json()] == [soon]


@pytest.mark.asyncio
async def test_totals(client, supplier, accountant_headers):
    created = await create_payable(client, accountant_headers, supplier.id)
    await client.post(
        f"{PAYABLES}/{created['id']}/pay", json={"amount": "250.00", "payment_method": "CASH"}, headers=accountant_headers
    )

    summary = (await client.get(f"{PAYABLES}/totals/summary", headers=accountant_headers)).json()
    assert len(summary["totals"]) == 5
    assert summary["outstanding_total"] == "750.00"

    by_status = await client.get(f"{PAYABLES}/totals/by-status/PARTIALLY_PAID", headers=accountant_headers)
    assert by_status.json() == {"status": "PARTIALLY_PAID", "total": "1000.00"}

    by_supplier = (await client.get(f"{PAYABLES}/totals/by-counterparty/{supplier.id}", headers=accountant_headers)).json()
    assert by_supplier["paid_total"] == "250.00"
    assert by_supplier["record_count"] == 1

    response = await client.get(f"{PAYABLES}/totals/by-status/LOST", headers=accountant_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_overdue_charges_suggestion(client, supplier, accountant_headers):
    created = await create_payable(client, accountant_headers, supplier.id, issue_date="2024-12-01", due_date="2025-01-10")

    response = await client.get(
        f"{PAYABLES}/{created['id']}/overdue-charges", params={"as_of": "2025-01-20"}, headers=accountant_headers
    )
    assert response.status_code == 200
    body = response.json()
    assert body["days_late"] == 10
    assert body["suggested_fine"] == "20.00"
    assert body["suggested_interest"] == "3.30"
