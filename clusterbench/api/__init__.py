"""HTTP API."""
from clusterbench.api.routes import router

__all__ = ["router"]
