from sqlalchemy import Column, Integer, String, Enum as SQLEnum
from logisync.db.base import BaseModel
from logisync.models.shared.enums import OrderStatus, enum_values

class Order(BaseModel):
    """Customer order, owned by the ordering module; read here to gate shipment creation"""
    __tablename__ = 'orders'

    organization_id = Column(Integer, nullable=False, index=True)
    customer_name = Column(String(255))
    status = Column(
        SQLEnum(OrderStatus, name="order_status", values_callable=enum_values),
        nullable=False,
        default=OrderStatus.PENDING
    )
