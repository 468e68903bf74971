from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fulfillment.db.models import Order, OrderItem, Product


class OrderStore:
    """Reads and writes the rows the fulfillment flow depends on.

    Every write is a single UPDATE scoped by primary key or tracking number, so
    concurrent requests rely on row-level atomicity of the database rather than
    on application locks.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_order(self, order_id: int) -> Optional[Order]:
        return self.db.get(Order, order_id)

    def get_items(self, order_id: int) -> List[OrderItem]:
        q = select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
        return list(self.db.scalars(q))

    def get_products(self, product_ids: Iterable[int]) -> List[Product]:
        ids = sorted({int(pid) for pid in product_ids})
        if not ids:
            return []
        return list(self.db.scalars(select(Product).where(Product.id.in_(ids))))

    def find_by_tracking_number(self, tracking_number: str) -> Optional[Order]:
        q = select(Order).where(Order.tracking_number == tracking_number).order_by(Order.id).limit(1)
        return self.db.scalars(q).first()

    def list_tracked_orders(self, limit: int = 100) -> List[Order]:
        q = (
            select(Order)
            .where(Order.tracking_number.is_not(None))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(limit)
        )
        return list(self.db.scalars(q))

    def record_label(self, order_id: int, tracking_number: str, label_url: str, shipment_status: str) -> None:
        self._execute(
            update(Order)
            .where(Order.id == order_id)
            .values(
                tracking_number=tracking_number,
                label_url=label_url,
                shipment_status=shipment_status,
                updated_at=datetime.utcnow(),
            )
        )

    def update_status(self, tracking_number: str, status: str, **timestamps: Optional[datetime]) -> int:
        values = {"status": status, "updated_at": datetime.utcnow()}
        values.update({k: v for k, v in timestamps.items() if v is not None})
        return self._execute(update(Order).where(Order.tracking_number == tracking_number).values(**values))

    def update_tracking(self, order_id: int, tracking_number: str, carrier: str, status: str,
                        **timestamps: Optional[datetime]) -> int:
        values = {
            "tracking_number": tracking_number,
            "carrier": carrier,
            "status": status,
            "updated_at": datetime.utcnow(),
        }
        values.update({k: v for k, v in timestamps.items() if v is not None})
        return self._execute(update(Order).where(Order.id == order_id).values(**values))

    def _execute(self, stmt) -> int:
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return result.rowcount
