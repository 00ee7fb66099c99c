# souk/models/order.py

from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, Numeric, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from souk.utils.database import Base, utcnow

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)  # автоинкремент

    customer_name = Column(String, nullable=False)            # Покупатель
    phone         = Column(String, nullable=False)            # Телефон
    address       = Column(Text, nullable=False)              # Адрес доставки
    city          = Column(String, nullable=False)            # Город
    notes         = Column(Text, nullable=True)               # Комментарий покупателя

    total_price   = Column(Numeric(10, 2), nullable=False)    # Сумма товаров
    delivery_cost = Column(Numeric(10, 2), nullable=False, default=0)
    status        = Column(String, nullable=False, default="NOUVELLE", index=True)

    carrier_name    = Column(String, nullable=True)           # Перевозчик, принявший заказ
    tracking_number = Column(String, nullable=True)           # Трек-номер
    carrier_status  = Column(String, nullable=True)           # Последний статус от перевозчика (как есть)

    synced_to_sheets = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    items = relationship("OrderItem", back_populates="order", lazy="selectin", order_by="OrderItem.id")

    @property
    def cod_amount(self) -> Decimal:
        """Сумма к получению при доставке: товары + доставка."""
        return Decimal(self.total_price or 0) + Decimal(self.delivery_cost or 0)


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id   = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity   = Column(Integer, nullable=False)
    # цена и себестоимость фиксируются в момент заказа
    unit_price = Column(Numeric(10, 2), nullable=False)
    unit_cost  = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product", lazy="selectin")
