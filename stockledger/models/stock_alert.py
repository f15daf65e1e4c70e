"""Stock Alert model - open while a product sits at or below its threshold."""
from datetime import datetime, timezone
from sqlalchemy import Column, BigInteger, String, Text, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from stockledger.database import Base, IdType


class StockAlert(Base):
    """Low/out-of-stock alert for a product."""

    __tablename__ = 'stock_alert'
    __table_args__ = (
        Index('ix_stock_alert_open', 'tenant_id', 'product_id', 'is_resolved'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    type = Column(String(30), nullable=False, default='low_stock')
    priority = Column(String(20), nullable=False)  # high, critical
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    is_resolved = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    # Relationships
    product = relationship('Product')

    def __repr__(self):
        return f"<StockAlert(id={self.id}, product_id={self.product_id}, priority='{self.priority}')>"
