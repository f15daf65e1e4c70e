"""
Audit Log model for tracking critical actions in the system.
"""
from sqlalchemy import Column, BigInteger, String, Text, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import enum

from stockledger.database import Base, IdType


class AuditAction(enum.Enum):
    """Enumeration of auditable actions."""
    # Product management
    PRODUCT_CREATED = "PRODUCT_CREATED"
    PRODUCT_UPDATED = "PRODUCT_UPDATED"
    PRODUCT_DELETED = "PRODUCT_DELETED"

    # Warehouse management
    WAREHOUSE_CREATED = "WAREHOUSE_CREATED"
    WAREHOUSE_UPDATED = "WAREHOUSE_UPDATED"
    WAREHOUSE_DELETED = "WAREHOUSE_DELETED"

    # Stock ledger
    STOCK_ADJUSTED = "STOCK_ADJUSTED"
    STOCK_MOVEMENT_RECORDED = "STOCK_MOVEMENT_RECORDED"
    TRANSFER_CREATED = "TRANSFER_CREATED"
    TRANSFER_CANCELLED = "TRANSFER_CANCELLED"

    # Alerts
    ALERT_RESOLVED = "ALERT_RESOLVED"


class AuditLog(Base):
    """
    Audit log for tracking user actions.
    Multi-tenant: filtered by tenant_id.
    """
    __tablename__ = 'audit_log'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False)
    action = Column(SQLEnum(AuditAction, name='audit_action'), nullable=False, index=True)
    resource_type = Column(String(50))  # e.g., 'product', 'warehouse', 'transfer'
    resource_id = Column(BigInteger)  # ID of the affected resource
    details = Column(Text)  # JSON with additional details
    ip_address = Column(String(45))  # IPv4 or IPv6
    user_agent = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)

    # Relationships
    tenant = relationship('Tenant')
    user = relationship('AppUser')

    def __repr__(self):
        return f"<AuditLog {self.action.value} by user {self.user_id} at {self.created_at}>"
