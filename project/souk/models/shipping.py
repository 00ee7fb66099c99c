# souk/models/shipping.py

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from souk.utils.database import Base, utcnow

class ShippingLabel(Base):
    """Результат передачи заказа перевозчику. Уникальность по order_id не навязывается."""
    __tablename__ = "shipping_labels"

    id = Column(Integer, primary_key=True, index=True)
    order_id        = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    provider_name   = Column(String, nullable=True)
    tracking_number = Column(String, nullable=True, index=True)
    label_url       = Column(Text, nullable=True)
    pdf_base64      = Column(Text, nullable=True)    # единственное поле, которое дозаполняется
    created_at      = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    order = relationship("Order", lazy="selectin")

    @property
    def has_pdf(self) -> bool:
        return bool(self.pdf_base64)


class SyncLog(Base):
    """Журнал обращений к внешним системам. Только вставка."""
    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True, index=True)
    order_id   = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    action     = Column(String, nullable=False)
    result     = Column(String, nullable=False)      # SUCCESS / FAILURE
    details    = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
