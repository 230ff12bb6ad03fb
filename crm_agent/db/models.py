import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Float, Integer, JSON, String, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class PropertyRecord(Base):
    """Read-only view of the CRM ``properties`` table the agent searches."""

    __tablename__ = "properties"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    company_id = Column(String(36), nullable=True, index=True)
    title = Column(String(500), nullable=False)
    type = Column(String(50), nullable=True, index=True)
    bhk_type = Column(String(20), nullable=True)
    price_min = Column(Float, nullable=True)
    price_max = Column(Float, nullable=True)
    # {"address": {"city": ..., "state": ..., "country": ...}, "locality": ...}
    location = Column(JSON, nullable=True, default=dict)
    description = Column(Text, nullable=True)
    amenities = Column(JSON, nullable=True, default=list)
    area_sqft = Column(Integer, nullable=True)
    status = Column(String(20), default="available", index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
