"""
CRM entity tables touched by the bulk import pipeline.

Only the columns the importer writes, deduplicates on, or removes by are
modelled here; the rest of the CRM owns the full entity schemas.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Float, Integer, String, Text

from app.db.session import Base


def _utcnow() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class EntityMixin:
    """Columns shared by every importable entity."""

    id = Column(String(36), primary_key=True, default=_new_id)
    status = Column(String(50), nullable=False, default="active", index=True)  # active, deleted
    owner_id = Column(String(255), nullable=True)
    scope_brand_ids = Column(JSON, nullable=False, default=list)
    custom_field_data = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    modified_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class Customer(EntityMixin, Base):
    """Customers and leads share one table, split by ``state``."""
    __tablename__ = "customers"

    state = Column(String(20), nullable=False, default="customer", index=True)  # customer, lead
    first_name = Column(String(255))
    last_name = Column(String(255))
    middle_name = Column(String(255))
    primary_email = Column(String(255), index=True)
    primary_phone = Column(String(100), index=True)
    code = Column(String(255), index=True)
    pronoun = Column(Integer)
    position = Column(String(255))
    department = Column(String(255))
    description = Column(Text)
    lead_status = Column(String(50))


class Company(EntityMixin, Base):
    __tablename__ = "companies"

    primary_name = Column(String(255), index=True)
    code = Column(String(255), index=True)
    primary_email = Column(String(255))
    primary_phone = Column(String(100))
    size = Column(Integer)
    industry = Column(String(255))
    website = Column(String(500))
    business_type = Column(String(100))
    description = Column(Text)


class Product(EntityMixin, Base):
    __tablename__ = "products"

    name = Column(String(255))
    code = Column(String(255), index=True)
    type = Column(String(50), default="product")
    unit_price = Column(Float)
    sku = Column(String(255))
    description = Column(Text)


class BoardItem(EntityMixin, Base):
    """Deals, tasks and tickets, split by ``type``."""
    __tablename__ = "board_items"

    type = Column(String(20), nullable=False, index=True)  # deal, task, ticket
    name = Column(String(500))
    description = Column(Text)
    stage_id = Column(String(255))
    priority = Column(String(50))
    close_date = Column(String(50))


class Field(Base):
    """Custom property definition attached to a content type."""
    __tablename__ = "fields"

    id = Column(String(36), primary_key=True, default=_new_id)
    content_type = Column(String(50), nullable=False, index=True)
    text = Column(String(255), nullable=False)
    type = Column(String(50), default="input")
    created_at = Column(DateTime(timezone=True), default=_utcnow)
