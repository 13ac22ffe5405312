"""
API endpoints package.

Contains FastAPI routers for all service endpoints:
- /login - Connection ingestion endpoint
- /health - Liveness check
- /metrics - Prometheus metrics
"""
from .health import router as health_router
from .login import router as login_router
from .metrics import router as metrics_router

__all__ = ["health_router", "login_router", "metrics_router"]
