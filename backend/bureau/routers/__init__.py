"""Credit Bureau Engine - API Routers"""
from .users import router as users_router
from .profiles import router as profiles_router
from .accounts import router as accounts_router
from .inquiries import router as inquiries_router
from .records import router as records_router
from .disputes import router as disputes_router
from .reports import router as reports_router
from .stats import router as stats_router

__all__ = [
    "users_router",
    "profiles_router",
    "accounts_router",
    "inquiries_router",
    "records_router",
    "disputes_router",
    "reports_router",
    "stats_router",
]
