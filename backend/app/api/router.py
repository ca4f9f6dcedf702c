from fastapi import APIRouter

from app.api.accruals import accruals_router
from app.api.balances import balance_router, employee_balance_router
from app.api.holidays import holidays_router
from app.api.leave_requests import leave_requests_router
from app.api.policies import leave_policies_router, leave_types_router, overtime_policies_router
from app.api.time_entries import time_entries_router

api_router = APIRouter()
api_router.include_router(leave_types_router)
api_router.include_router(leave_policies_router)
api_router.include_router(overtime_policies_router)
api_router.include_router(holidays_router)
api_router.include_router(employee_balance_router)
api_router.include_router(balance_router)
api_router.include_router(leave_requests_router)
api_router.include_router(time_entries_router)
api_router.include_router(accruals_router)
