"""Shopping cart of card singles."""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .models import Card, CardDataError, Deck
from .pricing import total_price, unit_price
from .scryfall_service import ScryfallAPIError


@dataclass
class CartItem:
    """A card printing in the cart with the number of copies ordered."""
    card_id: str
    name: str
    qty: int
    set_code: str = ""
    set_name: str = ""
    collector_number: str = ""
    image_url: str = ""
    eur: Optional[str] = None
    usd: Optional[str] = None

    @classmethod
    def from_card(cls, card: Card, qty: int) -> 'CartItem':
        return cls(
            card_id=card.id,
            name=card.name,
            qty=qty,
            set_code=card.set_code,
            set_name=card.set_name,
            collector_number=card.collector_number,
            image_url=card.image_url,
            eur=card.prices.get('eur'),
            usd=card.prices.get('usd'),
        )

    @property
    def display_name(self) -> str:
        """Name with printing details, as shown on checkout line items."""
        if not self.set_code:
            return self.name
        if not self.collector_number:
            return f"{self.name} · {self.set_code}"
        return f"{self.name} · {self.set_code} #{self.collector_number}"

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CartItem':
        return cls(**{key: data[key] for key in cls.__dataclass_fields__ if key in data})


@dataclass
class Cart:
    """A user's cart, keyed by card id and kept in insertion order."""
    user_id: str
    items: Dict[str, CartItem] = field(default_factory=dict)

    def __post_init__(self):
        self.logger = logging.getLogger(__name__)

    @property
    def total_qty(self) -> int:
        return sum(item.qty for item in self.items.values())

    @property
    def unit_price(self) -> float:
        return unit_price(self.total_qty)

    @property
    def subtotal(self) -> float:
        return total_price(self.total_qty)

    def add(self, card: Card, qty: int = 1) -> CartItem:
        """
        Add copies of a card, creating the item or incrementing its quantity.

        Args:
            card: Card printing to add
            qty: Number of copies

        Returns:
            The updated cart item
        """
        if qty < 1:
            raise ValueError(f"Quantity to add must be positive (got {qty})")

        item = self.items.get(card.id)
        if item is None:
            item = CartItem.from_card(card, qty)
            self.items[card.id] = item
        else:
            item.qty += qty

        self.logger.debug(f"Cart of {self.user_id}: {card.name} x{item.qty}")
        return item

    def remove_one(self, card_id: str) -> None:
        """Remove one copy of a card; the item is deleted when its last copy goes."""
        item = self.items.get(card_id)
        if item is None:
            return
        if item.qty <= 1:
            del self.items[card_id]
        else:
            item.qty -= 1

    def remove_item(self, card_id: str) -> None:
        """Remove a card from the cart entirely."""
        self.items.pop(card_id, None)

    def clear(self) -> None:
        self.items.clear()

    def add_deck(self, deck: Deck, lookup: Optional[Callable[[str], Optional[Card]]] = None) -> Tuple[int, int]:
        """
        Add every card of a deck to the cart with its deck quantity.

        Deck entries only carry display fields, so a lookup (e.g.
        ScryfallService.get_card_by_id) can be given to fetch full printing
        and price data first. Cards the lookup cannot resolve are skipped.

        Args:
            deck: Deck whose entries are added
            lookup: Optional card-id resolver

        Returns:
            Tuple of (units added, units that could not be added)
        """
        added = 0
        failed = 0

        for entry in deck.entries.values():
            card = entry.card
            if lookup is not None:
                try:
                    card = lookup(entry.card.id)
                except (ScryfallAPIError, CardDataError) as e:
                    self.logger.warning(f"Could not fetch {entry.card.name} for the cart: {e}")
                    card = None

            if card is None:
                failed += entry.quantity
                continue

            self.add(card, entry.quantity)
            added += entry.quantity

        self.logger.info(f"Added deck '{deck.name}' to cart: {added} added, {failed} failed")
        return added, failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            'user_id': self.user_id,
            'items': [item.to_dict() for item in self.items.values()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Cart':
        cart = cls(user_id=data['user_id'])
        for item_data in data.get('items', []):
            item = CartItem.from_dict(item_data)
            cart.items[item.card_id] = item
        return cart

    def line_items(self) -> List[CartItem]:
        return list(self.items.values())
