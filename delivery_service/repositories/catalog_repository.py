"""
Catalog Repository - read-only product snapshots for pricing
"""
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from delivery_service.models.catalog import OptionGroup, Product


class CatalogRepository:
    """Repository for reading products with their option groups"""
    
    def __init__(self, db: Session):
        self.db = db
    
    def get_product(self, product_id: str) -> Optional[Product]:
        """Get product by ID with option groups and choices loaded"""
        return self.db.query(Product).options(
            selectinload(Product.option_groups).selectinload(OptionGroup.choices)
        ).filter(Product.id == product_id).first()
