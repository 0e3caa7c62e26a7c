from .crud import LinkPage, LinkStore
from .service import LinkService, Resolution

__all__ = ["LinkPage", "LinkService", "LinkStore", "Resolution"]
