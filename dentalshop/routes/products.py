# dentalshop/routes/products.py
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.sql.expression import ColumnElement

from dentalshop.database import get_db
from dentalshop.models.product import Product
from dentalshop.models.users import User
from dentalshop.schemas import product as product_schemas
from dentalshop.services import catalog
from dentalshop.utils.audit import client_ip, write_log_safe
from dentalshop.utils.pricing import money
from dentalshop.utils.tokenJWT import role_required

router = APIRouter(prefix="/products", tags=["Products"])


def _get_unique_values(db: Session, column: ColumnElement) -> List[str]:
    values = db.query(column).distinct().filter(column != None, column != "").order_by(column).all()  # noqa: E711
    return [v[0] for v in values]


def _get_or_404(db: Session, product_id: int) -> Product:
    product = catalog.get_product_by_id(db, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


# =========================
# CATALOG (public)
# =========================
@router.get("", response_model=product_schemas.ProductListPage)
def list_products(
    q: Optional[str] = Query(None, description="Search by name, description or category"),
    category: Optional[str] = Query(None),
    featured: Optional[bool] = Query(None),
    in_stock: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(12, ge=1, le=100),
    sort_by: Literal["name", "price", "stock", "created_at"] = "name",
    order: Literal["asc", "desc"] = "asc",
    db: Session = Depends(get_db),
):
    query = db.query(Product).options(selectinload(Product.inclusions))

    if q:
        like = f"%{q}%"
        query = query.filter(
            or_(
                Product.name.ilike(like),
                Product.description.ilike(like),
                Product.category.ilike(like),
            )
        )
    if category:
        query = query.filter(Product.category.ilike(category))
    if featured is not None:
        query = query.filter(Product.featured == featured)
    if in_stock:
        query = query.filter(Product.stock > 0)

    allowed = {
        "name": Product.name,
        "price": Product.price,
        "stock": Product.stock,
        "created_at": Product.created_at,
    }
    sort_col = allowed[sort_by]
    query = query.order_by(sort_col.desc() if order == "desc" else sort_col.asc(), Product.id.asc())

    total = query.count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()
    return {"items": items, "total": total, "page": page, "page_size": page_size}


@router.get("/categories", response_model=List[str])
def get_product_categories(db: Session = Depends(get_db)):
    return _get_unique_values(db, Product.category)


@router.get("/{product_id}", response_model=product_schemas.ProductOut)
def get_product(product_id: int, db: Session = Depends(get_db)):
    return _get_or_404(db, product_id)


# =========================
# BACK-OFFICE (admin)
# =========================
@router.post("", response_model=product_schemas.ProductOut, status_code=status.HTTP_201_CREATED)
def add_product(
    payload: product_schemas.ProductCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin")),
):
    data = payload.model_dump(exclude={"inclusions"})
    data["price"] = money(data["price"])
    product = Product(**data)
    catalog.replace_inclusions(product, payload.inclusions)

    db.add(product)
    db.commit()

    write_log_safe(db, user_id=current_user.id, action="PRODUCT_CREATE", resource="products",
                   status="SUCCESS", ip=client_ip(request), meta={"id": product.id, "name": product.name})
    return _get_or_404(db, product.id)


@router.patch("/{product_id}", response_model=product_schemas.ProductOut)
def edit_product(
    product_id: int,
    payload: product_schemas.ProductEditRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin")),
):
    product = _get_or_404(db, product_id)

    # Only fields that were actually sent are applied
    changes = payload.model_dump(exclude_unset=True, exclude={"inclusions"})
    for key, value in changes.items():
        if value is None and key in {"name", "price", "stock", "featured"}:
            raise HTTPException(status_code=400, detail=f"{key} cannot be null")
        setattr(product, key, money(value) if key == "price" else value)

    if payload.inclusions is not None:
        catalog.replace_inclusions(product, payload.inclusions)

    db.commit()

    write_log_safe(db, user_id=current_user.id, action="PRODUCT_UPDATE", resource="products",
                   status="SUCCESS", ip=client_ip(request),
                   meta={"id": product_id, "fields": sorted(changes) + (["inclusions"] if payload.inclusions is not None else [])})
    return _get_or_404(db, product_id)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product(
    product_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin")),
):
    product = _get_or_404(db, product_id)
    catalog.delete_product(db, product)
    write_log_safe(db, user_id=current_user.id, action="PRODUCT_DELETE", resource="products",
                   status="SUCCESS", ip=client_ip(request), meta={"id": product_id})
