# dentalshop/routes/cart.py
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from dentalshop.database import get_db
from dentalshop.models.users import User
from dentalshop.schemas.cart import CartAddItem, CartLineOut, CartOut, CartState, CartUpdateItem
from dentalshop.services.cart_store import CartStore, SqlCartStorage, identity_for
from dentalshop.services.catalog import cart_line_for
from dentalshop.utils.audit import client_ip, write_log_safe
from dentalshop.utils.pricing import line_total
from dentalshop.utils.tokenJWT import get_optional_user

router = APIRouter(prefix="/cart", tags=["Cart"])

GUEST_COOKIE = "cart_guest_id"


# Resolve the shopper's cart slot: the user id when signed in, else a per-browser guest id
def get_cart_store(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
) -> CartStore:
    if current_user is not None:
        return CartStore(SqlCartStorage(db), identity_for(user_id=current_user.id))

    guest_id = request.cookies.get(GUEST_COOKIE)
    if not guest_id:
        guest_id = uuid.uuid4().hex
        response.set_cookie(GUEST_COOKIE, guest_id, httponly=True, samesite="lax", max_age=60 * 60 * 24 * 30)
    return CartStore(SqlCartStorage(db), identity_for(guest_id=guest_id))


def _cart_to_out(identity: str, state: CartState) -> CartOut:
    return CartOut(
        identity=identity,
        lines=[CartLineOut(**line.model_dump(), line_total=line_total(line)) for line in state.lines],
        total=state.total,
    )


def _audit(db: Session, request: Request, user: Optional[User], action: str, meta: dict):
    write_log_safe(db, user_id=user.id if user else None, action=action, resource="cart",
                   status="SUCCESS", ip=client_ip(request), meta=meta)


@router.get("", response_model=CartOut)
def get_cart(store: CartStore = Depends(get_cart_store)):
    return _cart_to_out(store.identity, store.state)


@router.post("/add", response_model=CartOut)
def add_to_cart(
    payload: CartAddItem,
    request: Request,
    store: CartStore = Depends(get_cart_store),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    line = cart_line_for(db, payload.product_id, payload.quantity, payload.inclusion_ids)
    state = store.add(line)
    _audit(db, request, current_user, "CART_ADD",
           {"product_id": line.product_id, "qty": line.quantity, "total": str(state.total)})
    return _cart_to_out(store.identity, state)


@router.put("/items/{product_id}", response_model=CartOut)
def update_cart_item(
    product_id: int,
    payload: CartUpdateItem,
    request: Request,
    store: CartStore = Depends(get_cart_store),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    state = store.update_quantity(product_id, payload.quantity)
    _audit(db, request, current_user, "CART_UPDATE",
           {"product_id": product_id, "qty": payload.quantity, "total": str(state.total)})
    return _cart_to_out(store.identity, state)


@router.delete("/items/{product_id}", response_model=CartOut)
def delete_cart_item(
    product_id: int,
    request: Request,
    store: CartStore = Depends(get_cart_store),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    state = store.remove(product_id)
    _audit(db, request, current_user, "CART_DELETE", {"product_id": product_id, "total": str(state.total)})
    return _cart_to_out(store.identity, state)


@router.delete("", response_model=CartOut)
def clear_cart(
    request: Request,
    store: CartStore = Depends(get_cart_store),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    state = store.clear()
    _audit(db, request, current_user, "CART_CLEAR", {})
    return _cart_to_out(store.identity, state)
