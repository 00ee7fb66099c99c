# souk/models/setting.py

from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime
from souk.utils.database import Base, utcnow

class Setting(Base):
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, index=True)
    key        = Column(String, unique=True, nullable=False)
    value      = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class AdCost(Base):
    """Рекламные расходы, вводятся вручную, нужны только для аналитики."""
    __tablename__ = "ad_costs"

    id = Column(Integer, primary_key=True, index=True)
    amount      = Column(Numeric(10, 2), nullable=False)
    description = Column(Text, nullable=True)
    date        = Column(DateTime(timezone=True), nullable=False)
    created_at  = Column(DateTime(timezone=True), default=utcnow, nullable=False)
