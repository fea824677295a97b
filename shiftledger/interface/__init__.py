"""Mini README: Interface layer package.

Hosts the FastAPI JSON service factory so ``main_shift_ledger`` can launch
it through uvicorn, and tests can drive it with ``TestClient``.
"""

from .web_app import create_application

__all__ = ["create_application"]
