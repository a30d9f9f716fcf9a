from .admin import router as admin_router
from .auth import router as auth_router
from .content import router as content_router
from .subscription import router as subscription_router
from .user import router as user_router

__all__ = [
    "admin_router",
    "auth_router",
    "content_router",
    "subscription_router",
    "user_router",
]
