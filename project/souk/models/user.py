# souk/models/user.py

from sqlalchemy import Column, Integer, String, DateTime, Boolean
from souk.utils.database import Base, utcnow

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name      = Column(String, nullable=True)
    login     = Column(String, unique=True, nullable=False)
    password  = Column(String, nullable=False)              # хэш
    role      = Column(String, nullable=False, default="operator")
    is_active = Column(Boolean, nullable=False, default=True)
    timestamp = Column(DateTime(timezone=True), default=utcnow)
