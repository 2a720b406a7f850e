"""
API v1
======

Routers mounted by `main.py`:

    routes.router            /health
    auth_routes.router       /api/v1/auth/...
    two_factor_routes.router /api/v1/auth/two-factor/...
    passkey_routes.router    /api/v1/auth/passkey/...
    admin_routes.router      /api/v1/auth/admin/...
    admin_routes.plus_router /api/v1/auth/admin-plus/...
    rbac_routes.router       /api/v1/auth/rbac/...
    console_routes.router    /api/v1/admin/...
    console_routes.avatar_router /api/v1/avatar
"""

from .routes import router
from .auth_routes import router as auth_router
from .two_factor_routes import router as two_factor_router
from .passkey_routes import router as passkey_router
from .admin_routes import router as admin_router, plus_router as admin_plus_router
from .rbac_routes import router as rbac_router
from .console_routes import router as console_router, avatar_router

__all__ = [
    "router",
    "auth_router",
    "two_factor_router",
    "passkey_router",
    "admin_router",
    "admin_plus_router",
    "rbac_router",
    "console_router",
    "avatar_router",
]
