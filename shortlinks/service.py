import asyncio
import logging
from typing import Callable, NamedTuple

from . import models
from .crud import LinkPage, LinkStore
from .errors import (
    AllocationExhaustedError,
    ConflictError,
    DuplicateCodeError,
    NotFoundError,
    ValidationError,
)
from .shortcode import generate_code, is_valid_short_code, is_valid_url, normalize_code

logger = logging.getLogger("shortlinks.service")

INVALID_URL = "URL must be an absolute http:// or https:// address"
INVALID_CODE = "Short code must be 3-7 characters of letters, digits, '-' or '_'"


class Resolution(NamedTuple):
    destination: str | None
    found: bool


class LinkService:
    """Allocates short codes and resolves them back to destinations.

    Holds no locks. Every "is this code free?" check is advisory and the
    store's unique constraint decides; on the auto-generated path a lost
    race simply means drawing another code.
    """

    def __init__(
        self,
        store: LinkStore,
        generator: Callable[[], str] = generate_code,
        max_attempts: int = 1000,
    ):
        self.store = store
        self.generator = generator
        self.max_attempts = max_attempts
        self._visit_tasks: set[asyncio.Task] = set()

    # ---------- create ----------

    async def create_short_link(
        self, original_url: str, requested_code: str | None = None
    ) -> models.ShortLink:
        if not is_valid_url(original_url):
            raise ValidationError(INVALID_URL)
        if requested_code is not None and requested_code != "":
            if not is_valid_short_code(requested_code):
                raise ValidationError(INVALID_CODE)
            return await self._claim_code(original_url, normalize_code(requested_code))

        existing = await self.store.find_by_original_url(original_url)
        if existing:
            logger.debug("Reusing %s for %s", existing.short_code, original_url)
            return existing
        link = await self._allocate(original_url)
        return await self._settle_duplicate(link)

    async def _settle_duplicate(self, link: models.ShortLink) -> models.ShortLink:
        # Concurrent callers can all miss the lookup above and each insert a row
        # for the same destination. The lowest id wins and the rest step aside.
        first = await self.store.find_by_original_url(link.original_url)
        if first is None or first.id >= link.id:
            return link
        await self.store.delete_many([link.id])
        logger.info("Dropped %s, %s already maps %s", link.short_code, first.short_code, link.original_url)
        return first

    async def _claim_code(self, original_url: str, code: str) -> models.ShortLink:
        if await self.store.find_by_code(code):
            raise DuplicateCodeError(f"Short code '{code}' is already taken")
        try:
            link = await self.store.insert(original_url, code)
        except ConflictError:
            raise DuplicateCodeError(f"Short code '{code}' is already taken") from None
        logger.info("Created custom link %s -> %s", code, original_url)
        return link

    async def _allocate(self, original_url: str) -> models.ShortLink:
        for attempt in range(1, self.max_attempts + 1):
            code = self.generator()
            if await self.store.find_by_code(code):
                logger.debug("Generated code %s collided, redrawing", code)
                continue
            try:
                link = await self.store.insert(original_url, code)
            except ConflictError:
                logger.debug("Lost insert race for %s, redrawing", code)
                continue
            if attempt > 1:
                logger.info("Allocated %s after %d attempts", code, attempt)
            logger.info("Created link %s -> %s", code, original_url)
            return link
        raise AllocationExhaustedError(
            f"Could not allocate a unique short code in {self.max_attempts} attempts"
        )

    # ---------- resolve ----------

    async def resolve_short_link(self, code: str) -> Resolution:
        link = await self.store.find_by_code(code)
        if not link:
            logger.debug("Short code not found: %s", code)
            return Resolution(destination=None, found=False)
        self._schedule_visit(code)
        return Resolution(destination=link.original_url, found=True)

    def _schedule_visit(self, code: str) -> None:
        task = asyncio.create_task(self.store.increment_visit(code))
        self._visit_tasks.add(task)
        task.add_done_callback(lambda t: self._visit_done(code, t))

    def _visit_done(self, code: str, task: asyncio.Task) -> None:
        self._visit_tasks.discard(task)
        if task.cancelled():
            logger.warning("Visit count update for %s was cancelled", code)
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Failed to increment visit count for %s", code, exc_info=exc)

    async def drain(self) -> None:
        """Wait for in-flight visit count updates."""
        while self._visit_tasks:
            await asyncio.gather(*list(self._visit_tasks), return_exceptions=True)

    # ---------- admin ----------

    async def get_by_code(self, code: str) -> models.ShortLink:
        link = await self.store.find_by_code(code)
        if not link:
            raise NotFoundError(f"Short code '{code}' not found")
        return link

    async def get_short_link(self, link_id: int) -> models.ShortLink:
        link = await self.store.get(link_id)
        if not link:
            raise NotFoundError(f"Link {link_id} not found")
        return link

    async def update_short_link(
        self,
        link_id: int,
        url: str | None = None,
        short_code: str | None = None,
    ) -> models.ShortLink:
        # Empty fields mean "leave unchanged", as on creation.
        url = url or None
        short_code = short_code or None
        if url is not None and not is_valid_url(url):
            raise ValidationError(INVALID_URL)
        if short_code is not None:
            if not is_valid_short_code(short_code):
                raise ValidationError(INVALID_CODE)
            short_code = normalize_code(short_code)

        current = await self.get_short_link(link_id)
        changes = {}
        if url is not None and url != current.original_url:
            changes["original_url"] = url
        if short_code is not None and short_code != current.short_code:
            other = await self.store.find_by_code(short_code)
            if other and other.id != link_id:
                raise DuplicateCodeError(f"Short code '{short_code}' is already taken")
            changes["short_code"] = short_code
        if not changes:
            return current

        try:
            link = await self.store.update(link_id, **changes)
        except ConflictError:
            raise DuplicateCodeError(f"Short code '{short_code}' is already taken") from None
        logger.info("Updated link %s: %s", link_id, ", ".join(sorted(changes)))
        return link

    async def delete_short_link(self, link_id: int) -> None:
        await self.store.delete(link_id)
        logger.info("Deleted link %s", link_id)

    async def batch_delete(self, ids: list[int]) -> int:
        if not ids:
            raise ValidationError("Provide at least one link id")
        count = await self.store.delete_many(ids)
        logger.info("Batch deleted %d of %d links", count, len(ids))
        return count

    async def list_links(
        self,
        page: int = 1,
        page_size: int = 10,
        search: str | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> LinkPage:
        return await self.store.list_links(
            page=page,
            page_size=page_size,
            search=search,
            sort_by=sort_by,
            sort_order=sort_order,
        )
