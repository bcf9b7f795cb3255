"""
Database seeding script for counterparties.

Creates a few suppliers and customers for development; supplier/customer
management itself lives outside this service.

Run with: python -m ledger_backend.seed_counterparties
"""

import asyncio

from sqlalchemy import select

from ledger_backend.app.db.session import AsyncSessionLocal, engine, Base
from ledger_backend.app.models.counterparty import Supplier, Customer

# Registered with Base so create_all builds the full schema
from ledger_backend.app.models.audit_log import AuditLog  # noqa: F401
from ledger_backend.app.models.installment_plan import InstallmentPlan  # noqa: F401
from ledger_backend.app.models.ledger_record import AccountPayable, AccountReceivable  # noqa: F401
from ledger_backend.app.models.payment_entry import PaymentEntry  # noqa: F401

SUPPLIERS = [
    {"name": "Acme Office Supplies", "document": "11.111.111/0001-11", "email": "billing@acme.test"},
    {"name": "Globex Logistics", "document": "22.222.222/0001-22", "email": "ar@globex.test"},
]

CUSTOMERS = [
    {"name": "Initech", "document": "33.333.333/0001-33", "email": "ap@initech.test"},
    {"name": "Umbrella Retail", "document": "44.444.444/0001-44", "email": "finance@umbrella.test"},
]


async def seed_counterparties():
    """
    Seed suppliers and customers.

    Skips any counterparty whose document is already present, so the
    script can be re-run safely.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting counterparty seeding...")
        created = 0

        for model, rows in ((Supplier, SUPPLIERS), (Customer, CUSTOMERS)):
            for row in rows:
                result = await db.execute(select(model).where(model.document == row["document"]))
                if result.scalar_one_or_none():
                    print(f"ℹ️  {model.__name__} {row['name']} already exists, skipping")
                    continue
                db.add(model(**row, is_active=True))
                created += 1
                print(f"✅ Created {model.__name__}: {row['name']}")

        await db.commit()
        print(f"\n🎉 Counterparty seeding completed ({created} created)")


if __name__ == "__main__":
    asyncio.run(seed_counterparties())
