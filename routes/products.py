from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.actors import ActorContext, require_roles
from core.db import get_db
from models.product import Product
from models.user import UserRole
from schemas.product import ProductCreate, ProductUpdate, ProductOut

router = APIRouter(prefix="/products", tags=["products"])

seller_only = require_roles(UserRole.RETAIL, UserRole.WHOLESALE)


@router.get("/", response_model=List[ProductOut])
def list_products(seller_id: Optional[int] = None, db: Session = Depends(get_db)):
    qs = db.query(Product).filter(Product.is_active.is_(True))
    if seller_id is not None:
        qs = qs.filter(Product.seller_id == seller_id)
    return qs.order_by(Product.name).all()


@router.post("/", response_model=ProductOut, status_code=201)
def create_product(data: ProductCreate, actor: ActorContext = Depends(seller_only), db: Session = Depends(get_db)):
    product = Product(
        seller_id=actor.user_id,
        name=data.name,
        sku=data.sku,
        description=data.description,
        price=data.price,
        currency=data.currency,
        stock=data.stock,
        is_active=True,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@router.patch("/{product_id}", response_model=ProductOut)
def update_product(
    product_id: int,
    data: ProductUpdate,
    actor: ActorContext = Depends(seller_only),
    db: Session = Depends(get_db),
):
    product = db.query(Product).filter(Product.seller_id == actor.user_id, Product.id == product_id).one_or_none()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(product, field, value)

    db.commit()
    db.refresh(product)
    return product
