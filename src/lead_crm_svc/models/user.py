from sqlalchemy import Boolean, Column, DateTime, Integer, String, func
from sqlalchemy import Enum as SAEnum

from .base import Base
from .enums import Department, UserRole


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=False, unique=True, index=True)
    hashed_password = Column(String, nullable=False)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    role = Column(SAEnum(UserRole, native_enum=False), nullable=False, default=UserRole.User)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    @property
    def department(self):
        """Department a presales/sales user works in; None for other roles."""
        if self.role == UserRole.Presales:
            return Department.Presales
        if self.role == UserRole.Sales:
            return Department.Sales
        return None

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', name='{self.name}', role='{self.role}')>"
