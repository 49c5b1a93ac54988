# apps/ecommerce/cart.py

"""
Cart and wishlist state.

``CartState`` is an immutable value and ``reduce_cart`` is a pure reducer
over it. ``CartStore`` applies actions and persists the result through a
storage backend, so the same state logic serves anonymous sessions and
signed-in users.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from django.core.cache import cache

from apps.shipping.calculator import calculate_total_weight, to_decimal


class CartAction:
    ADD_ITEM = 'ADD_ITEM'
    REMOVE_ITEM = 'REMOVE_ITEM'
    UPDATE_QUANTITY = 'UPDATE_QUANTITY'
    CLEAR = 'CLEAR'
    WISHLIST_ADD = 'WISHLIST_ADD'
    WISHLIST_REMOVE = 'WISHLIST_REMOVE'
    WISHLIST_TOGGLE = 'WISHLIST_TOGGLE'
    WISHLIST_CLEAR = 'WISHLIST_CLEAR'

    ALL = (
        ADD_ITEM, REMOVE_ITEM, UPDATE_QUANTITY, CLEAR,
        WISHLIST_ADD, WISHLIST_REMOVE, WISHLIST_TOGGLE, WISHLIST_CLEAR,
    )


@dataclass(frozen=True)
class CartItem:
    art_listing_id: str
    title: str
    price: Decimal
    quantity: int = 1
    weight: Optional[Decimal] = None
    image: str = ''

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            'art_listing_id': self.art_listing_id,
            'title': self.title,
            'price': str(self.price),
            'quantity': self.quantity,
            'weight': str(self.weight) if self.weight is not None else None,
            'image': self.image,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CartItem':
        weight = data.get('weight')
        return cls(
            art_listing_id=str(data['art_listing_id']),
            title=data.get('title', ''),
            price=to_decimal(data.get('price')),
            quantity=int(data.get('quantity') or 1),
            weight=to_decimal(weight) if weight not in (None, '') else None,
            image=data.get('image') or '',
        )


@dataclass(frozen=True)
class WishlistItem:
    art_listing_id: str
    title: str = ''
    price: Optional[Decimal] = None
    image: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'art_listing_id': self.art_listing_id,
            'title': self.title,
            'price': str(self.price) if self.price is not None else None,
            'image': self.image,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WishlistItem':
        price = data.get('price')
        return cls(
            art_listing_id=str(data['art_listing_id']),
            title=data.get('title', ''),
            price=to_decimal(price) if price not in (None, '') else None,
            image=data.get('image') or '',
        )


@dataclass(frozen=True)
class CartState:
    items: Tuple[CartItem, ...] = field(default_factory=tuple)
    wishlist: Tuple[WishlistItem, ...] = field(default_factory=tuple)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def subtotal(self) -> Decimal:
        return sum((item.line_total for item in self.items), Decimal('0'))

    @property
    def total_weight(self) -> Decimal:
        return calculate_total_weight(self.items)

    def in_wishlist(self, art_listing_id) -> bool:
        return any(entry.art_listing_id == str(art_listing_id) for entry in self.wishlist)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'items': [item.to_dict() for item in self.items],
            'wishlist': [entry.to_dict() for entry in self.wishlist],
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'CartState':
        data = data or {}
        return cls(
            items=tuple(CartItem.from_dict(item) for item in data.get('items', [])),
            wishlist=tuple(WishlistItem.from_dict(entry) for entry in data.get('wishlist', [])),
        )


def _without_item(items, art_listing_id):
    return tuple(item for item in items if item.art_listing_id != art_listing_id)


def reduce_cart(state: CartState, action: Dict[str, Any]) -> CartState:
    """
    Apply an action to the cart state and return the new state.

    Actions are dicts with a ``type`` and a ``payload``. Unknown action types
    raise ``ValueError``.
    """
    action_type = action.get('type')
    payload = action.get('payload') or {}

    if action_type == CartAction.ADD_ITEM:
        new_item = CartItem.from_dict(payload)
        if new_item.quantity < 1:
            return state
        for index, item in enumerate(state.items):
            if item.art_listing_id == new_item.art_listing_id:
                merged = replace(item, quantity=item.quantity + new_item.quantity)
                return replace(state, items=state.items[:index] + (merged,) + state.items[index + 1:])
        return replace(state, items=state.items + (new_item,))

    if action_type == CartAction.REMOVE_ITEM:
        return replace(state, items=_without_item(state.items, str(payload['art_listing_id'])))

    if action_type == CartAction.UPDATE_QUANTITY:
        art_listing_id = str(payload['art_listing_id'])
        quantity = int(payload.get('quantity') or 0)
        if quantity <= 0:
            return replace(state, items=_without_item(state.items, art_listing_id))
        return replace(state, items=tuple(
            replace(item, quantity=quantity) if item.art_listing_id == art_listing_id else item
            for item in state.items
        ))

    if action_type == CartAction.CLEAR:
        return replace(state, items=())

    if action_type == CartAction.WISHLIST_ADD:
        entry = WishlistItem.from_dict(payload)
        if state.in_wishlist(entry.art_listing_id):
            return state
        return replace(state, wishlist=state.wishlist + (entry,))

    if action_type == CartAction.WISHLIST_REMOVE:
        art_listing_id = str(payload['art_listing_id'])
        return replace(state, wishlist=tuple(
            entry for entry in state.wishlist if entry.art_listing_id != art_listing_id
        ))

    if action_type == CartAction.WISHLIST_TOGGLE:
        if state.in_wishlist(payload['art_listing_id']):
            return reduce_cart(state, {'type': CartAction.WISHLIST_REMOVE, 'payload': payload})
        return reduce_cart(state, {'type': CartAction.WISHLIST_ADD, 'payload': payload})

    if action_type == CartAction.WISHLIST_CLEAR:
        return replace(state, wishlist=())

    raise ValueError(f"Unknown cart action: {action_type}")


class SessionCartStorage:
    """Persist cart state in the Django session"""

    session_key = 'artafrik_cart'

    def __init__(self, session):
        self.session = session

    def load(self) -> CartState:
        return CartState.from_dict(self.session.get(self.session_key))

    def save(self, state: CartState):
        self.session[self.session_key] = state.to_dict()
        self.session.modified = True


class CacheCartStorage:
    """Persist cart state in the Django cache, keyed per user"""

    timeout = 60 * 60 * 24 * 30

    def __init__(self, user_id):
        self.key = f"cart:user:{user_id}"

    def load(self) -> CartState:
        return CartState.from_dict(cache.get(self.key))

    def save(self, state: CartState):
        cache.set(self.key, state.to_dict(), self.timeout)


class CartStore:
    """Reducer-backed cart with pluggable persistence"""

    def __init__(self, storage):
        self.storage = storage
        self._state = None

    @classmethod
    def for_request(cls, request) -> 'CartStore':
        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated:
            return cls(CacheCartStorage(user.pk))
        return cls(SessionCartStorage(request.session))

    @property
    def state(self) -> CartState:
        if self._state is None:
            self._state = self.storage.load()
        return self._state

    def dispatch(self, action_type: str, payload: Optional[Dict[str, Any]] = None) -> CartState:
        new_state = reduce_cart(self.state, {'type': action_type, 'payload': payload or {}})
        if new_state is not self._state:
            self.storage.save(new_state)
            self._state = new_state
        return new_state

    def snapshot(self) -> Dict[str, Any]:
        state = self.state
        data = state.to_dict()
        data.update({
            'item_count': state.item_count,
            'subtotal': str(state.subtotal),
            'total_weight': str(state.total_weight),
        })
        return data
