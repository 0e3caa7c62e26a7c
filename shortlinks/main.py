import logging
import math
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.security import OAuth2PasswordRequestForm

from . import auth, qr_utils, schemas
from .config import Settings, load_settings
from .crud import LinkStore
from .database import make_engine
from .errors import ShortLinkError
from .service import LinkService
from .shortcode import is_valid_short_code

logger = logging.getLogger("shortlinks")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    )


def get_service(request: Request) -> LinkService:
    return request.app.state.service


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def short_url_for(settings: Settings, code: str) -> str:
    return f"{settings.public_base_url}/{code}"


router = APIRouter()

# Health check (useful for uptime monitors & load balancers)
@router.get("/health", include_in_schema=False)
def health(settings: Settings = Depends(get_settings)):
    return {"status": "ok", "env": settings.environment}

# ---------- Auth ----------
@router.post("/login", response_model=schemas.Token)
def login(
    response: Response,
    form_data: OAuth2PasswordRequestForm = Depends(),
    settings: Settings = Depends(get_settings),
):
    if not auth.authenticate_user(settings, form_data.username, form_data.password):
        logger.warning("Failed admin login for %r", form_data.username)
        raise HTTPException(status_code=400, detail="Invalid credentials")
    token = auth.create_access_token(settings, {"sub": form_data.username})
    # Only set secure cookie if HTTPS is configured
    is_https = settings.public_base_url.startswith("https://")
    response.set_cookie(
        key=auth.COOKIE_NAME, value=token,
        httponly=True, samesite="lax", secure=is_https, path="/",
        max_age=settings.access_token_expire_minutes * 60,
    )
    return {"access_token": token, "token_type": "bearer"}

@router.post("/logout", include_in_schema=False)
def logout(response: Response):
    response.delete_cookie(auth.COOKIE_NAME, path="/")
    return {"ok": True}

# ---------- Public API ----------
@router.post("/api/shorten", response_model=schemas.ShortenResponse, response_model_exclude_none=True)
async def shorten(
    body: schemas.ShortenRequest,
    service: LinkService = Depends(get_service),
    settings: Settings = Depends(get_settings),
):
    link = await service.create_short_link(body.url, body.short_code)
    short_url = short_url_for(settings, link.short_code)
    qr_code = None
    if body.with_qr:
        # A broken QR render must not cost the caller their link.
        try:
            qr_code = qr_utils.generate_qr_data_url(short_url)
        except Exception:
            logger.exception("QR generation failed for %s", short_url)
    return {"short_url": short_url, "short_code": link.short_code, "qr_code": qr_code}

@router.get("/qr/{code}", response_model=schemas.QrOut)
async def qr_code(
    code: str,
    service: LinkService = Depends(get_service),
    settings: Settings = Depends(get_settings),
):
    link = await service.get_by_code(code)
    return {"qr_base64": qr_utils.generate_qr_base64(short_url_for(settings, link.short_code))}

# ---------- Admin API ----------
admin = APIRouter(prefix="/api/admin/links")

@admin.get("", response_model=schemas.LinksPage)
async def list_links(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    search: str | None = Query(None),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    service: LinkService = Depends(get_service),
    user: str = Depends(auth.get_current_user),
):
    result = await service.list_links(
        page=page, page_size=page_size, search=search or None,
        sort_by=sort_by, sort_order=sort_order,
    )
    return {
        "links": result.items,
        "total": result.total,
        "page": page,
        "page_size": page_size,
        "total_pages": math.ceil(result.total / page_size),
    }

@admin.post("", response_model=schemas.LinkOut, status_code=201)
async def create_link(
    link_in: schemas.LinkCreate,
    service: LinkService = Depends(get_service),
    user: str = Depends(auth.get_current_user),
):
    logger.info("Creating link: code=%s target=%s by=%s", link_in.short_code, link_in.url, user)
    return await service.create_short_link(link_in.url, link_in.short_code)

@admin.delete("", response_model=schemas.BatchDeleteOut)
async def batch_delete(
    body: schemas.BatchDelete,
    service: LinkService = Depends(get_service),
    user: str = Depends(auth.get_current_user),
):
    count = await service.batch_delete(body.ids)
    logger.info("Batch delete of %d ids removed %d by=%s", len(body.ids), count, user)
    return {"message": f"Deleted {count} link(s)", "count": count}

@admin.get("/{link_id}", response_model=schemas.LinkOut)
async def get_link(
    link_id: int,
    service: LinkService = Depends(get_service),
    user: str = Depends(auth.get_current_user),
):
    return await service.get_short_link(link_id)

@admin.put("/{link_id}", response_model=schemas.LinkOut)
async def update_link(
    link_id: int,
    link_in: schemas.LinkUpdate,
    service: LinkService = Depends(get_service),
    user: str = Depends(auth.get_current_user),
):
    link = await service.update_short_link(link_id, url=link_in.url, short_code=link_in.short_code)
    logger.info("Updated link %s -> %s %s by=%s", link_id, link.short_code, link.original_url, user)
    return link

@admin.delete("/{link_id}", response_model=schemas.MessageOut)
async def delete_link(
    link_id: int,
    service: LinkService = Depends(get_service),
    user: str = Depends(auth.get_current_user),
):
    await service.delete_short_link(link_id)
    logger.info("Deleted link %s by=%s", link_id, user)
    return {"ok": True, "detail": f"Link {link_id} deleted"}

router.include_router(admin)

# Pretty redirect /{code}; registered last so it never shadows the routes above
@router.get("/{code}", include_in_schema=False)
async def redirect(code: str, service: LinkService = Depends(get_service)):
    if not is_valid_short_code(code):
        raise HTTPException(status_code=404, detail="Not found")
    resolution = await service.resolve_short_link(code)
    if not resolution.found:
        raise HTTPException(status_code=404, detail="Not found")
    return RedirectResponse(url=resolution.destination, status_code=302)


async def handle_service_error(request: Request, exc: ShortLinkError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def create_app(settings: Settings | None = None, store: LinkStore | None = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    if store is None:
        store = LinkStore(make_engine(settings.database_url), timeout=settings.store_timeout)
    service = LinkService(store, max_attempts=settings.max_allocation_attempts)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await store.create_all()
        yield
        await service.drain()
        await store.dispose()

    app = FastAPI(
        title="Short Links",
        description="Shorten URLs, redirect visitors and manage links from an admin API.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.service = service

    # --- CORS (allow frontend dev servers, etc.) ---
    origins = ["*"] if not settings.is_prod else [settings.public_base_url]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ShortLinkError, handle_service_error)
    app.include_router(router)
    return app
