from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, PositiveInt


class ShortenRequest(BaseModel):
    url: str
    short_code: str | None = None
    with_qr: bool = False

class ShortenResponse(BaseModel):
    short_url: str
    short_code: str
    qr_code: str | None = None

class LinkCreate(BaseModel):
    url: str
    short_code: str | None = None

class LinkUpdate(BaseModel):
    url: str | None = None
    short_code: str | None = None

class LinkOut(BaseModel):
    id: int
    original_url: str
    short_code: str
    created_at: datetime
    visit_count: int

    model_config = ConfigDict(from_attributes=True)

class LinksPage(BaseModel):
    links: list[LinkOut]
    total: int
    page: int
    page_size: int
    total_pages: int

class BatchDelete(BaseModel):
    ids: list[PositiveInt] = Field(min_length=1)

class BatchDeleteOut(BaseModel):
    message: str
    count: int

class QrOut(BaseModel):
    qr_base64: str

class Token(BaseModel):
    access_token: str
    token_type: str

class MessageOut(BaseModel):
    ok: bool
    detail: str
