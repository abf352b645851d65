"""HTTP surface (FastAPI) over the collector gateway."""

from notice_ledger.api.app import build_app, create_app

__all__ = ["build_app", "create_app"]
