"""Stock Transfer Item model."""
from sqlalchemy import Column, BigInteger, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from stockledger.database import Base, IdType


class StockTransferItem(Base):
    """Stock Transfer Item (one product line of a transfer)."""

    __tablename__ = 'stock_transfer_item'

    id = Column(IdType, primary_key=True, autoincrement=True)
    transfer_id = Column(BigInteger, ForeignKey('stock_transfer.id'), nullable=False)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)

    # Relationships
    transfer = relationship('StockTransfer', back_populates='items')
    product = relationship('Product')

    def __repr__(self):
        return f"<StockTransferItem(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"
