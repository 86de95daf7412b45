"""SQLAlchemy ORM models for YardSketch.

One row per project. Ordered lists (generated images, material line items)
are stored as JSONB so their order survives the round trip.
"""

from datetime import datetime

from sqlalchemy import DateTime, Float, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class ProjectRow(Base):
    __tablename__ = "projects"
    __table_args__ = (Index("idx_projects_owner_created", "owner_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    climate_zone: Mapped[str] = mapped_column(String(50), nullable=False)
    sun_exposure: Mapped[str] = mapped_column(String(20), nullable=False)
    square_footage: Mapped[int] = mapped_column(Integer, nullable=False)
    design_style: Mapped[str] = mapped_column(String(20), nullable=False)
    budget: Mapped[float | None] = mapped_column(Float, nullable=True)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")

    original_image: Mapped[str | None] = mapped_column(Text, nullable=True)
    design_thesis: Mapped[str | None] = mapped_column(Text, nullable=True)
    generated_images: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    materials_list: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    total_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    image_analysis: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
