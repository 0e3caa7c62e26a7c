from sqlalchemy import Column, DateTime, Integer, String, func

from .database import Base


class ShortLink(Base):
    __tablename__ = "short_links"
    # Without AUTOINCREMENT SQLite hands a deleted max id to the next row.
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    original_url = Column(String(2048), index=True, nullable=False)
    short_code = Column(String(7), unique=True, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    visit_count = Column(Integer, default=0, server_default="0", nullable=False)

    def __repr__(self):
        return f"<ShortLink {self.id} {self.short_code} -> {self.original_url}>"
