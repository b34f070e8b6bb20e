from collections.abc import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.product import Product
from app.schemas.product import ProductCreate


class ProductRepository:
    def __init__(self, db: Session):
        self.db = db

    def product_exists(self, product_id: UUID) -> bool:
        return self.db.query(Product.id).filter(Product.id == product_id).first() is not None

    def missing_ids(self, product_ids: Iterable[UUID]) -> list[UUID]:
        """Return the ids from ``product_ids`` that match no product."""
        wanted = list(dict.fromkeys(product_ids))
        if not wanted:
            return []
        found = {
            row[0] for row in self.db.query(Product.id).filter(Product.id.in_(wanted)).all()
        }
        return [product_id for product_id in wanted if product_id not in found]

    def create(self, data: ProductCreate) -> Product:
        product = Product(**data.model_dump())
        self.db.add(product)
        self.db.commit()
        self.db.refresh(product)
        return product
