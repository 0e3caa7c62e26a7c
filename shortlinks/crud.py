import asyncio
import logging
from typing import NamedTuple

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine

from . import models
from .database import Base, make_sessionmaker
from .errors import ConflictError, NotFoundError, StoreUnavailableError, ValidationError

logger = logging.getLogger("shortlinks.crud")

SORTABLE_COLUMNS = {"id", "original_url", "short_code", "created_at", "visit_count"}
MAX_PAGE_SIZE = 100


class LinkPage(NamedTuple):
    items: list[models.ShortLink]
    total: int


class LinkStore:
    """Persistence for short links.

    Each call runs in its own session and transaction and is bounded by
    ``timeout`` seconds. Uniqueness of ``short_code`` is enforced by the
    database constraint, so callers must treat ``ConflictError`` as
    authoritative even after a successful ``find_by_code`` pre-check.
    """

    def __init__(self, engine: AsyncEngine, timeout: float = 10.0):
        self.engine = engine
        self.timeout = timeout
        self.sessions = make_sessionmaker(engine)

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def _run(self, op: str, coro):
        try:
            return await asyncio.wait_for(coro, self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Store %s timed out after %ss", op, self.timeout)
            raise StoreUnavailableError(f"Database timed out during {op}") from None
        except OperationalError as exc:
            logger.warning("Store %s failed: %s", op, exc)
            raise StoreUnavailableError(f"Database unavailable during {op}") from exc

    # ---------- reads ----------

    async def get(self, link_id: int) -> models.ShortLink | None:
        async def _get():
            async with self.sessions() as db:
                return await db.get(models.ShortLink, link_id)

        return await self._run("get", _get())

    async def find_by_code(self, code: str) -> models.ShortLink | None:
        return await self._run(
            "find_by_code",
            self._first(select(models.ShortLink).filter_by(short_code=code)),
        )

    async def find_by_original_url(self, url: str) -> models.ShortLink | None:
        stmt = (
            select(models.ShortLink)
            .filter_by(original_url=url)
            .order_by(models.ShortLink.id)
            .limit(1)
        )
        return await self._run("find_by_original_url", self._first(stmt))

    async def _first(self, stmt):
        async with self.sessions() as db:
            result = await db.execute(stmt)
            return result.scalars().first()

    async def list_links(
        self,
        page: int = 1,
        page_size: int = 10,
        search: str | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> LinkPage:
        if page < 1 or page_size < 1:
            raise ValidationError("page and page_size must be positive")
        if sort_by not in SORTABLE_COLUMNS:
            raise ValidationError(f"Cannot sort by '{sort_by}'")
        if sort_order not in ("asc", "desc"):
            raise ValidationError("sort_order must be 'asc' or 'desc'")
        page_size = min(page_size, MAX_PAGE_SIZE)

        where = []
        if search:
            where.append(
                or_(
                    models.ShortLink.original_url.contains(search, autoescape=True),
                    models.ShortLink.short_code.contains(search, autoescape=True),
                )
            )
        column = getattr(models.ShortLink, sort_by)
        order = column.asc() if sort_order == "asc" else column.desc()

        async def _list():
            async with self.sessions() as db:
                total = await db.scalar(
                    select(func.count()).select_from(models.ShortLink).where(*where)
                )
                result = await db.execute(
                    select(models.ShortLink)
                    .where(*where)
                    # id breaks ties so pages never overlap
                    .order_by(order, models.ShortLink.id.asc())
                    .offset((page - 1) * page_size)
                    .limit(page_size)
                )
                return LinkPage(items=list(result.scalars().all()), total=total or 0)

        return await self._run("list_links", _list())

    # ---------- writes ----------

    async def insert(self, original_url: str, short_code: str) -> models.ShortLink:
        async def _insert():
            async with self.sessions() as db:
                link = models.ShortLink(original_url=original_url, short_code=short_code)
                db.add(link)
                try:
                    await db.commit()
                except IntegrityError:
                    await db.rollback()
                    raise ConflictError(f"Short code '{short_code}' is already in use") from None
                await db.refresh(link)
                return link

        return await self._run("insert", _insert())

    async def update(
        self,
        link_id: int,
        *,
        original_url: str | None = None,
        short_code: str | None = None,
    ) -> models.ShortLink:
        async def _update():
            async with self.sessions() as db:
                link = await db.get(models.ShortLink, link_id)
                if not link:
                    raise NotFoundError(f"Link {link_id} not found")
                if original_url is not None:
                    link.original_url = original_url
                if short_code is not None:
                    link.short_code = short_code
                try:
                    await db.commit()
                except IntegrityError:
                    await db.rollback()
                    raise ConflictError(f"Short code '{short_code}' is already in use") from None
                await db.refresh(link)
                return link

        return await self._run("update", _update())

    async def delete(self, link_id: int) -> None:
        async def _delete():
            async with self.sessions() as db:
                result = await db.execute(
                    delete(models.ShortLink).where(models.ShortLink.id == link_id)
                )
                await db.commit()
                if result.rowcount == 0:
                    raise NotFoundError(f"Link {link_id} not found")

        await self._run("delete", _delete())

    async def delete_many(self, ids: list[int]) -> int:
        if not ids:
            return 0

        async def _delete_many():
            async with self.sessions() as db:
                result = await db.execute(
                    delete(models.ShortLink).where(models.ShortLink.id.in_(ids))
                )
                await db.commit()
                return result.rowcount

        return await self._run("delete_many", _delete_many())

    async def increment_visit(self, code: str) -> None:
        # Single UPDATE; no read-modify-write.
        async def _increment():
            async with self.sessions() as db:
                await db.execute(
                    update(models.ShortLink)
                    .where(models.ShortLink.short_code == code)
                    .values(visit_count=models.ShortLink.visit_count + 1)
                )
                await db.commit()

        await self._run("increment_visit", _increment())
