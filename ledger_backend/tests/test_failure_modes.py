"""
Failure Injection Tests.

Validates behaviour when Redis or the database misbehaves.
"""

import pytest
from datetime import date
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.exc import OperationalError

from ledger_backend.app.core.exceptions import ConcurrencyConflictError
from ledger_backend.app.domain.ledger.engine import LedgerEngine
from ledger_backend.app.domain.ledger.sweeper import sweep_with_lock
from ledger_backend.app.models.ledger_enums import AccountStatus


@pytest.fixture
def broken_redis(mocker):
    redis = mocker.AsyncMock()
    redis.set.side_effect = RedisConnectionError("Connection refused")
    redis.exists.side_effect = RedisConnectionError("Connection refused")
    redis.ping.side_effect = RedisConnectionError("Connection refused")
    return redis


@pytest.mark.asyncio
async def test_sweep_skipped_when_lock_unavailable(db_session, session_factory, broken_redis, payable_engine, payable_queries, supplier, accountant, new_record):
    record = await payable_engine.create(db_session, new_record(supplier.id, due=date(2025, 1, 10)), accountant)

    assert await sweep_with_lock(redis=broken_redis, session_factory=session_factory, now=date(2025, 2, 1)) is None
    assert (await payable_queries.get(db_session, record.id)).status == AccountStatus.PENDING


@pytest.mark.asyncio
async def test_revocation_check_fails_open(client, accountant_headers, broken_redis, mocker):
    """Redis outage must not lock every user out."""
    mocker.patch("ledger_backend.app.core.token_revocation.get_redis", return_value=broken_redis)

    response = await client.get("/v1/accounts-payable", headers=accountant_headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_health_reports_redis_down(client, broken_redis, mocker):
    mocker.patch("ledger_backend.app.core.redis_client.get_redis", return_value=broken_redis)

    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["redis"] == "down"


@pytest.mark.asyncio
async def test_store_failure_is_500_and_rolled_back(client, supplier, accountant_headers, mocker):
    mocker.patch(
        "ledger_backend.app.domain.ledger.engine.log_event",
        side_effect=OperationalError("INSERT INTO audit_logs", {}, Exception("disk I/O error")),
    )

    response = await client.post(
        "/v1/accounts-payable",
        json={"supplier_id": supplier.id, "original_amount": "100.00", "due_date": "2030-01-10"},
        headers=accountant_headers,
    )
    assert response.status_code == 500
    assert response.json()["error_code"] == "ERR_PERSISTENCE_001"

    listing = await client.get("/v1/accounts-payable", headers=accountant_headers)
    assert listing.json()["total"] == 0


@pytest.mark.asyncio
async def test_exhausted_retries_are_409(client, supplier, accountant_headers, mocker):
    response = await client.post(
        "/v1/accounts-payable",
        json={"supplier_id": supplier.id, "original_amount": "100.00", "due_date": "2030-01-10"},
        headers=accountant_headers,
    )
    record_id = response.json()["id"]

    mocker.patch.object(LedgerEngine, "apply_payment", side_effect=ConcurrencyConflictError())

    response = await client.post(
        f"/v1/accounts-payable/{record_id}/pay",
        json={"amount": "100.00", "payment_method": "CASH"},
        headers=accountant_headers,
    )
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_CONFLICT_001"


@pytest.mark.asyncio
async def test_correlation_id_is_propagated(client):
    response = await client.get("/health", headers={"X-Correlation-ID": "req-42"})
    assert response.headers["X-Correlation-ID"] == "req-42"

    response = await client.get("/health")
    assert response.headers["X-Correlation-ID"]
