"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from ledger_backend.app.api.v1.endpoints.ledger import payable_router, receivable_router

router = APIRouter()

# Accounts payable (suppliers) and accounts receivable (customers)
router.include_router(payable_router)
router.include_router(receivable_router)
