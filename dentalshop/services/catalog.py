# dentalshop/services/catalog.py
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session, selectinload

from dentalshop.models.order import OrderItem
from dentalshop.models.product import Product, ProductInclusion
from dentalshop.schemas.cart import CartLine, SelectedInclusion
from dentalshop.schemas.product import InclusionIn
from dentalshop.services.errors import InvalidInclusionError, ProductInUseError, ProductNotFoundError
from dentalshop.utils.pricing import money


def get_product_by_id(db: Session, product_id: int) -> Optional[Product]:
    return (
        db.query(Product)
        .options(selectinload(Product.inclusions))
        .filter(Product.id == product_id)
        .first()
    )


def get_products_map(db: Session, product_ids: Iterable[int]) -> Dict[int, Product]:
    ids = list(set(product_ids))
    if not ids:
        return {}
    query = db.query(Product).options(selectinload(Product.inclusions)).filter(Product.id.in_(ids))
    return {p.id: p for p in query.all()}


def find_missing_product_ids(db: Session, product_ids: Iterable[int]) -> List[int]:
    # Keeps the caller's order, reports each id once
    ids = list(dict.fromkeys(product_ids))
    found = get_products_map(db, ids)
    return [pid for pid in ids if pid not in found]


def cart_line_for(db: Session, product_id: int, quantity: int, inclusion_ids: Iterable[int]) -> CartLine:
    """Snapshot name, price, image and chosen inclusions from the catalog for an add-to-cart."""
    product = get_product_by_id(db, product_id)
    if not product:
        raise ProductNotFoundError(product_id)

    wanted = list(dict.fromkeys(inclusion_ids))
    by_id = {inc.id: inc for inc in product.inclusions}
    unknown = [i for i in wanted if i not in by_id]
    if unknown:
        raise InvalidInclusionError(product_id, unknown)

    return CartLine(
        product_id=product.id,
        name=product.name,
        unit_price=money(product.price),
        quantity=quantity,
        image=product.image_url,
        selected_inclusions=[
            SelectedInclusion(
                inclusion_id=inc.id,
                name=inc.name,
                description=inc.description,
                price=money(inc.price),
            )
            for inc in (by_id[i] for i in wanted)
        ],
    )


def replace_inclusions(product: Product, inclusions: List[InclusionIn]) -> None:
    # Order history keeps its own copies, so the live set can be replaced freely
    product.inclusions = [
        ProductInclusion(name=inc.name, description=inc.description, price=money(inc.price))
        for inc in inclusions
    ]


def delete_product(db: Session, product: Product) -> None:
    in_use = db.query(OrderItem.id).filter(OrderItem.product_id == product.id).first()
    if in_use:
        raise ProductInUseError(product.id)
    db.delete(product)
    db.commit()
