"""Warehouse model."""
from sqlalchemy import Column, BigInteger, Integer, String, Text, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from stockledger.database import Base, IdType


class Warehouse(Base):
    """Warehouse (storage location)."""

    __tablename__ = 'warehouse'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'code', name='uq_warehouse_tenant_code'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False)
    code = Column(String(50), nullable=False)
    name = Column(String(100), nullable=False)
    address = Column(String(500), nullable=True)
    city = Column(String(100), nullable=True)
    manager = Column(String(200), nullable=True)
    capacity = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant')
    stocks = relationship('WarehouseStock', back_populates='warehouse')

    def __repr__(self):
        return f"<Warehouse(id={self.id}, code='{self.code}', name='{self.name}')>"
