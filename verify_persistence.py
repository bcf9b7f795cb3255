import asyncio
import time
import subprocess
import httpx
import sys
import os
import signal

from sqlalchemy import select

from ledger_backend.app.core.jwt import create_access_token
from ledger_backend.app.db.session import AsyncSessionLocal
from ledger_backend.app.models.counterparty import Supplier
from ledger_backend.seed_counterparties import seed_counterparties

BASE_URL = "http://127.0.0.1:8000"
API_PREFIX = "/v1"
SERVER_CMD = [sys.executable, "-m", "uvicorn", "ledger_backend.app.main:app", "--host", "127.0.0.1", "--port", "8000"]


def wait_for_server(retries=10, delay=2):
    url = f"{BASE_URL}/health"
    print(f"Waiting for server at {url}...")
    for i in range(retries):
        try:
            resp = httpx.get(url)
            if resp.status_code == 200:
                print("✅ Server is up!")
                return True
        except httpx.HTTPError:
            pass
        time.sleep(delay)
    print("❌ Server failed to start.")
    return False


async def first_supplier_id() -> int:
    await seed_counterparties()
    async with AsyncSessionLocal() as db:
        result = await db.execute(select(Supplier.id).order_by(Supplier.id).limit(1))
        return result.scalar_one()


def run_verification():
    supplier_id = asyncio.run(first_supplier_id())
    token = create_access_token({"sub": "persistence-check", "user_id": 1, "role": "ACCOUNTANT"})
    headers = {"Authorization": f"Bearer {token}"}

    # 1. Start Server (First Run)
    print("\n--- [Step 1] Starting Server (Initial) ---")
    proc = subprocess.Popen(
        SERVER_CMD,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env={**os.environ, "DB_ECHO": "True", "OVERDUE_SWEEP_ENABLED": "False"}
    )

    try:
        if not wait_for_server():
            server_logs = proc.communicate(timeout=2)
            print("Server Stdout:", server_logs[0].decode())
            print("Server Stderr:", server_logs[1].decode())
            raise RuntimeError("Server start failed")

        # 2. Create a payable
        print("\n--- [Step 2] Creating Account Payable (Persistence Test) ---")
        payload = {
            "supplier_id": supplier_id,
            "invoice_number": f"PERSIST-{int(time.time())}",
            "original_amount": "1250.00",
            "due_date": "2030-01-10",
        }
        resp = httpx.post(f"{BASE_URL}{API_PREFIX}/accounts-payable", json=payload, headers=headers)
        if resp.status_code != 201:
            print(f"❌ Creation Failed: {resp.status_code} {resp.text}")
            raise RuntimeError("Creation failed")
        location = resp.headers["Location"]
        print(f"✅ Payable Created at {location}")

    finally:
        print("\n--- [Step 3] Stopping Server ---")
        proc.send_signal(signal.SIGTERM)
        proc.wait()

    time.sleep(2)  # Wait for port release

    # 3. Restart Server
    print("\n--- [Step 4] Restarting Server (Verification) ---")
    proc2 = subprocess.Popen(
        SERVER_CMD,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env={**os.environ, "OVERDUE_SWEEP_ENABLED": "False"}
    )

    try:
        if not wait_for_server():
            raise RuntimeError("Server restart failed")

        print("\n--- [Step 5] Reading Payable (Post-Restart) ---")
        resp = httpx.get(f"{BASE_URL}{location}", headers=headers)
        if resp.status_code == 200 and resp.json()["net_amount"] == "1250.00":
            print("✅ Payable Persisted")
            print(resp.json())
        else:
            print(f"❌ Read Failed (Persistence Issue?): {resp.status_code} {resp.text}")
            raise RuntimeError("Record missing after restart")

    finally:
        print("\n--- [Step 6] Stopping Server ---")
        proc2.send_signal(signal.SIGTERM)
        proc2.wait()


if __name__ == "__main__":
    run_verification()
