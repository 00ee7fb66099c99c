# souk/models/product.py

from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime
from souk.utils.database import Base, utcnow

class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    title       = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    sku         = Column(String, unique=True, nullable=True)
    price       = Column(Numeric(10, 2), nullable=False)      # цена продажи
    cost_price  = Column(Numeric(10, 2), nullable=False)      # себестоимость
    stock       = Column(Integer, nullable=False, default=0)
    created_at  = Column(DateTime(timezone=True), default=utcnow, nullable=False)
