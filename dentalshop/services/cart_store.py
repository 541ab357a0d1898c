# dentalshop/services/cart_store.py
"""
Shopper cart state.

Transitions are pure reducers over an immutable CartState. CartStore applies
them and notifies its subscribers afterwards; persisting the snapshot to the
shopper's storage slot is one such subscriber.
"""
import logging
from typing import Callable, Dict, List, Optional, Protocol

from pydantic import ValidationError
from sqlalchemy.orm import Session

from dentalshop.models.cart import CartSlot
from dentalshop.schemas.cart import CartLine, CartState
from dentalshop.utils.pricing import cart_total

logger = logging.getLogger(__name__)

GUEST_IDENTITY = "guest"

EMPTY_CART = CartState()


def _with_lines(lines: List[CartLine]) -> CartState:
    # Total is derived from the lines on every transition
    return CartState(lines=lines, total=cart_total(lines))


# === Reducers ===

def add_line(state: CartState, line: CartLine) -> CartState:
    """Same product again: quantities add up and the incoming inclusions replace the old ones."""
    if any(existing.product_id == line.product_id for existing in state.lines):
        lines = [
            existing.model_copy(update={
                "quantity": existing.quantity + line.quantity,
                "selected_inclusions": list(line.selected_inclusions),
            })
            if existing.product_id == line.product_id else existing
            for existing in state.lines
        ]
    else:
        lines = [*state.lines, line]
    return _with_lines(lines)


def remove_line(state: CartState, product_id: int) -> CartState:
    return _with_lines([line for line in state.lines if line.product_id != product_id])


def update_quantity(state: CartState, product_id: int, quantity: int) -> CartState:
    # Quantities below one remove the line, a stored zero would fail validation on reload
    if quantity < 1:
        return remove_line(state, product_id)
    return _with_lines([
        line.model_copy(update={"quantity": quantity}) if line.product_id == product_id else line
        for line in state.lines
    ])


def clear_cart(state: CartState) -> CartState:
    return EMPTY_CART


# === Storage ===

class CartStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...


class MemoryCartStorage:
    def __init__(self):
        self.slots: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self.slots.get(key)

    def set(self, key: str, value: str) -> None:
        self.slots[key] = value

    def delete(self, key: str) -> None:
        self.slots.pop(key, None)


class SqlCartStorage:
    def __init__(self, db: Session):
        self.db = db

    def get(self, key: str) -> Optional[str]:
        slot = self.db.get(CartSlot, key)
        return slot.payload if slot else None

    def set(self, key: str, value: str) -> None:
        slot = self.db.get(CartSlot, key)
        if slot:
            slot.payload = value
        else:
            self.db.add(CartSlot(slot_key=key, payload=value))
        self.db.commit()

    def delete(self, key: str) -> None:
        slot = self.db.get(CartSlot, key)
        if slot:
            self.db.delete(slot)
            self.db.commit()


def slot_key(identity: str) -> str:
    return f"cart_{identity}"


def identity_for(user_id: Optional[int] = None, guest_id: Optional[str] = None) -> str:
    if user_id is not None:
        return str(user_id)
    if guest_id:
        return f"{GUEST_IDENTITY}:{guest_id}"
    return GUEST_IDENTITY


def load_snapshot(storage: CartStorage, identity: str) -> CartState:
    """Missing or malformed snapshots load as an empty cart."""
    key = slot_key(identity)
    raw = storage.get(key)
    if raw is None:
        return EMPTY_CART
    try:
        saved = CartState.model_validate_json(raw)
    except ValidationError as e:
        logger.warning("Discarding corrupted cart snapshot %s: %s", key, e.errors()[:3])
        storage.delete(key)
        return EMPTY_CART
    return _with_lines(saved.lines)


Listener = Callable[[str, CartState], None]


class CartStore:
    def __init__(self, storage: CartStorage, identity: str = GUEST_IDENTITY):
        self.storage = storage
        self.identity = identity
        self._listeners: List[Listener] = [self._persist]
        self._state = load_snapshot(storage, identity)

    @property
    def state(self) -> CartState:
        return self._state

    @property
    def lines(self) -> List[CartLine]:
        return list(self._state.lines)

    @property
    def total(self):
        return self._state.total

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _persist(self, identity: str, state: CartState) -> None:
        self.storage.set(slot_key(identity), state.model_dump_json())

    def _dispatch(self, reducer, *args) -> CartState:
        self._state = reducer(self._state, *args)
        for listener in list(self._listeners):
            listener(self.identity, self._state)
        return self._state

    def add(self, line: CartLine) -> CartState:
        return self._dispatch(add_line, line)

    def remove(self, product_id: int) -> CartState:
        return self._dispatch(remove_line, product_id)

    def update_quantity(self, product_id: int, quantity: int) -> CartState:
        return self._dispatch(update_quantity, product_id, quantity)

    def clear(self) -> CartState:
        self._dispatch(clear_cart)
        self.storage.delete(slot_key(self.identity))
        return self._state

    def switch_identity(self, identity: str) -> CartState:
        """Save the outgoing shopper's cart to its own slot, then load the incoming one. Carts are never merged."""
        if identity == self.identity:
            return self._state
        self._persist(self.identity, self._state)
        self.identity = identity
        self._state = load_snapshot(self.storage, identity)
        return self._state
