"""Provider webhook routers."""
from app.api.webhooks import voice

__all__ = ["voice"]
