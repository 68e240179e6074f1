"""
Data models for the MTG deck engine.

This module contains the core data structures used throughout the application,
including Card, DeckEntry, Deck and DeckStatistics, together with the card
classification rules and the format legality rules applied on every deck mutation.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


FORMAT_LIMITS = {
    'commander': 100,
    'standard': 60,
    'modern': 60,
    'legacy': 60,
    'vintage': 60,
}

DEFAULT_DECK_NAME = "My Deck"
DEFAULT_FORMAT = 'commander'

# Canonical category order, also used for exports
CATEGORIES = (
    'commander',
    'creatures',
    'planeswalkers',
    'instants',
    'sorceries',
    'artifacts',
    'enchantments',
    'lands',
    'other',
)

COLORS = ('W', 'U', 'B', 'R', 'G')
COLORLESS = 'Colorless'

MAX_COPIES = 4

REASON_DECK_FULL = "deck full"
REASON_COMMANDER_PRESENT = "commander already present"
REASON_SINGLETON = "singleton violation"
REASON_COPY_LIMIT = "4-copy limit reached"
REASON_CARD_NOT_FOUND = "card not found"


class CardDataError(ValueError):
    """Raised when a card payload is missing required fields."""
    pass


class DeckEntryNotFoundError(KeyError):
    """Raised when an entry-targeted operation names a card that is not in the deck."""
    pass


@dataclass
class Card:
    """Represents a card record supplied by the card lookup service."""
    id: str
    name: str
    mana_cost: str = ""
    mana_value: float = 0.0
    type_line: str = ""
    colors: List[str] = field(default_factory=list)
    color_identity: List[str] = field(default_factory=list)
    set_code: str = ""
    set_name: str = ""
    collector_number: str = ""
    image_url: str = ""
    prices: Dict[str, Optional[str]] = field(default_factory=dict)

    def __post_init__(self):
        if not self.id or not self.name:
            raise CardDataError(f"Card requires an id and a name (got id={self.id!r}, name={self.name!r})")
        if self.mana_value < 0:
            raise CardDataError(f"Mana value cannot be negative for {self.name}")

    @classmethod
    def from_scryfall_data(cls, data: Dict[str, Any]) -> 'Card':
        """
        Create a Card from a Scryfall API card object.

        Double-faced cards carry their mana cost and images on the faces,
        so the front face is used when the top-level fields are absent.

        Args:
            data: Raw card object as returned by Scryfall

        Returns:
            Validated Card

        Raises:
            CardDataError: If required fields are missing or malformed
        """
        faces = data.get('card_faces') or []
        front = faces[0] if faces else {}

        mana_cost = data.get('mana_cost') or front.get('mana_cost', '')
        image_uris = data.get('image_uris') or front.get('image_uris') or {}

        try:
            mana_value = float(data.get('cmc') or 0)
        except (TypeError, ValueError):
            raise CardDataError(f"Invalid mana value for {data.get('name', '<unknown>')}: {data.get('cmc')!r}")

        return cls(
            id=data.get('id', ''),
            name=data.get('name', ''),
            mana_cost=mana_cost or '',
            mana_value=mana_value,
            type_line=data.get('type_line') or front.get('type_line', ''),
            colors=list(data.get('colors') or front.get('colors') or []),
            color_identity=list(data.get('color_identity') or []),
            set_code=(data.get('set') or '').upper(),
            set_name=data.get('set_name', ''),
            collector_number=str(data.get('collector_number') or ''),
            image_url=image_uris.get('small') or image_uris.get('normal', ''),
            prices=dict(data.get('prices') or {}),
        )

    @property
    def effective_colors(self) -> List[str]:
        """Colors of the card, falling back to color identity when the color set is empty."""
        return self.colors or self.color_identity

    @property
    def price_eur(self) -> Optional[float]:
        """Reference EUR market price, if Scryfall reported one."""
        try:
            return float(self.prices.get('eur')) if self.prices.get('eur') else None
        except (TypeError, ValueError):
            return None


def classify_card(card: Card, deck_format: str) -> str:
    """
    Classify a card into a deck category.

    The checks form an ordered decision list and the first match wins,
    so a legendary artifact creature lands in 'commander' (commander format)
    or 'creatures' (any other format).

    Args:
        card: Card to classify
        deck_format: Format of the deck the card goes into

    Returns:
        One of CATEGORIES
    """
    type_line = card.type_line.lower()

    if deck_format == 'commander' and 'legendary' in type_line and 'creature' in type_line:
        return 'commander'
    if 'creature' in type_line:
        return 'creatures'
    if 'planeswalker' in type_line:
        return 'planeswalkers'
    if 'instant' in type_line:
        return 'instants'
    if 'sorcery' in type_line:
        return 'sorceries'
    if 'artifact' in type_line:
        return 'artifacts'
    if 'enchantment' in type_line:
        return 'enchantments'
    if 'land' in type_line:
        return 'lands'
    return 'other'


def is_basic_land(card: Card) -> bool:
    """Check if a card is a basic land (exempt from every per-card copy limit)."""
    type_line = card.type_line.lower()
    return 'basic' in type_line and 'land' in type_line


@dataclass
class MutationResult:
    """Outcome of a deck mutation: applied, or rejected with a user-facing reason."""
    accepted: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.accepted

    @classmethod
    def ok(cls) -> 'MutationResult':
        return cls(True)

    @classmethod
    def rejected(cls, reason: str) -> 'MutationResult':
        return cls(False, reason)


@dataclass
class DeckEntry:
    """A card in a deck with its quantity and the category assigned at insertion."""
    card: Card
    quantity: int
    category: str

    def __post_init__(self):
        if self.quantity < 1:
            raise ValueError(f"Deck entry quantity must be at least 1 (got {self.quantity})")
        if self.category not in CATEGORIES:
            raise ValueError(f"Unknown category: {self.category}")

    def to_snapshot(self) -> Dict[str, Any]:
        """Serializable form carrying enough display fields to re-render without a lookup."""
        return {
            'card_id': self.card.id,
            'name': self.card.name,
            'quantity': self.quantity,
            'category': self.category,
            'image_url': self.card.image_url,
            'mana_cost': self.card.mana_cost,
            'mana_value': self.card.mana_value,
            'type_line': self.card.type_line,
            'colors': list(self.card.colors),
            'color_identity': list(self.card.color_identity),
        }


def _copy_limit_reason(deck_format: str, card: Card, new_quantity: int) -> Optional[str]:
    """Reason the format's per-card copy limit forbids new_quantity, or None if allowed."""
    if is_basic_land(card):
        return None
    if deck_format == 'commander' and new_quantity > 1:
        return REASON_SINGLETON
    if deck_format != 'commander' and new_quantity > MAX_COPIES:
        return REASON_COPY_LIMIT
    return None


@dataclass
class Deck:
    """An ordered set of deck entries keyed by card id, plus deck metadata."""
    name: str = DEFAULT_DECK_NAME
    format: str = DEFAULT_FORMAT
    description: str = ""
    entries: Dict[str, DeckEntry] = field(default_factory=dict)
    deck_id: Optional[str] = None

    def __post_init__(self):
        if self.format not in FORMAT_LIMITS:
            raise ValueError(f"Unknown format: {self.format}")

    @property
    def limit(self) -> int:
        """Maximum number of cards allowed by the deck's format."""
        return FORMAT_LIMITS[self.format]

    @property
    def total_cards(self) -> int:
        """Sum of all entry quantities."""
        return sum(entry.quantity for entry in self.entries.values())

    @property
    def commander_entry(self) -> Optional[DeckEntry]:
        for entry in self.entries.values():
            if entry.category == 'commander':
                return entry
        return None

    def __contains__(self, card_id: str) -> bool:
        return card_id in self.entries

    def get_entry(self, card_id: str) -> DeckEntry:
        """
        Get the entry for a card id.

        Raises:
            DeckEntryNotFoundError: If the deck holds no entry for card_id
        """
        try:
            return self.entries[card_id]
        except KeyError:
            raise DeckEntryNotFoundError(card_id)

    def entries_by_category(self) -> Dict[str, List[DeckEntry]]:
        """Entries grouped by category in canonical order, omitting empty categories."""
        grouped = {}
        for category in CATEGORIES:
            entries = [entry for entry in self.entries.values() if entry.category == category]
            if entries:
                grouped[category] = entries
        return grouped

    def add_card(self, card: Card) -> MutationResult:
        """
        Add one copy of a card, enforcing the deck limit and the format's copy rules.

        Args:
            card: Card to add

        Returns:
            MutationResult; on rejection the deck is left unchanged
        """
        category = classify_card(card, self.format)

        if self.total_cards >= self.limit:
            return MutationResult.rejected(REASON_DECK_FULL)

        if category == 'commander' and self.commander_entry is not None:
            return MutationResult.rejected(REASON_COMMANDER_PRESENT)

        existing = self.entries.get(card.id)
        if existing is None:
            self.entries[card.id] = DeckEntry(card=card, quantity=1, category=category)
            return MutationResult.ok()

        reason = _copy_limit_reason(self.format, existing.card, existing.quantity + 1)
        if reason:
            return MutationResult.rejected(reason)

        if self.total_cards + 1 > self.limit:
            return MutationResult.rejected(REASON_DECK_FULL)

        # Category stays as assigned at insertion
        existing.quantity += 1
        return MutationResult.ok()

    def update_quantity(self, card_id: str, delta: int) -> MutationResult:
        """
        Change the quantity of an existing entry by delta.

        An entry whose quantity drops to zero or below is removed.

        Args:
            card_id: Id of the card whose entry changes
            delta: Signed quantity change

        Returns:
            MutationResult; on rejection the entry is left unchanged

        Raises:
            DeckEntryNotFoundError: If the deck holds no entry for card_id
        """
        entry = self.get_entry(card_id)

        if delta > 0 and self.total_cards + delta > self.limit:
            return MutationResult.rejected(REASON_DECK_FULL)

        new_quantity = entry.quantity + delta

        if delta > 0:
            reason = _copy_limit_reason(self.format, entry.card, new_quantity)
            if reason:
                return MutationResult.rejected(reason)

        if new_quantity > 0:
            entry.quantity = new_quantity
        else:
            del self.entries[card_id]
        return MutationResult.ok()

    def remove_card(self, card_id: str) -> bool:
        """
        Remove the entry for a card id if present.

        Returns:
            True if an entry was removed
        """
        return self.entries.pop(card_id, None) is not None

    def clear(self) -> None:
        """Remove every entry and reset name, description and format to defaults."""
        self.entries.clear()
        self.name = DEFAULT_DECK_NAME
        self.description = ""
        self.format = DEFAULT_FORMAT
        self.deck_id = None

    def change_format(self, new_format: str) -> MutationResult:
        """
        Switch the deck to another format if the current contents satisfy its rules.

        Categories are not recomputed.

        Raises:
            ValueError: If new_format is not a known format
        """
        if new_format not in FORMAT_LIMITS:
            raise ValueError(f"Unknown format: {new_format}")

        if self.total_cards > FORMAT_LIMITS[new_format]:
            return MutationResult.rejected(REASON_DECK_FULL)

        for entry in self.entries.values():
            reason = _copy_limit_reason(new_format, entry.card, entry.quantity)
            if reason:
                return MutationResult.rejected(f"{reason}: {entry.card.name}")

        self.format = new_format
        return MutationResult.ok()

    def to_snapshot(self) -> Dict[str, Any]:
        """Serializable deck metadata plus entry list for the persistence collaborator."""
        return {
            'deck_id': self.deck_id,
            'name': self.name,
            'format': self.format,
            'description': self.description,
            'cards': [entry.to_snapshot() for entry in self.entries.values()],
        }

    @classmethod
    def from_snapshot(cls, snapshot: Dict[str, Any]) -> 'Deck':
        """
        Rebuild a deck from a stored snapshot, keeping stored categories.

        A stored 'commander' entry that is not a legendary creature in a
        commander deck is re-classified.

        Args:
            snapshot: Mapping produced by to_snapshot

        Returns:
            Deck with the snapshot's metadata and entries
        """
        deck = cls(
            name=snapshot.get('name') or DEFAULT_DECK_NAME,
            format=snapshot.get('format') or DEFAULT_FORMAT,
            description=snapshot.get('description') or "",
            deck_id=snapshot.get('deck_id'),
        )

        for card_data in snapshot.get('cards', []):
            card = Card(
                id=card_data['card_id'],
                name=card_data['name'],
                mana_cost=card_data.get('mana_cost') or '',
                mana_value=float(card_data.get('mana_value') or 0),
                type_line=card_data.get('type_line') or '',
                colors=list(card_data.get('colors') or []),
                color_identity=list(card_data.get('color_identity') or []),
                image_url=card_data.get('image_url') or '',
            )
            category = card_data.get('category') or classify_card(card, deck.format)
            if category == 'commander' and classify_card(card, deck.format) != 'commander':
                category = classify_card(card, deck.format)

            deck.entries[card.id] = DeckEntry(
                card=card,
                quantity=int(card_data.get('quantity', 1)),
                category=category,
            )

        return deck


ManaCurveKey = Union[int, str]


@dataclass
class DeckStatistics:
    """Statistics derived from a deck's current entries. Never stored."""
    total_cards: int = 0
    average_mana_value: float = 0.0
    mana_curve: Dict[ManaCurveKey, int] = field(default_factory=dict)
    color_count: Dict[str, int] = field(default_factory=dict)
    type_count: Dict[str, int] = field(default_factory=dict)

    def __post_init__(self):
        """Initialize every color bucket so callers can index it directly."""
        for color in COLORS + (COLORLESS,):
            self.color_count.setdefault(color, 0)

    @classmethod
    def from_deck(cls, deck: Deck) -> 'DeckStatistics':
        """
        Recompute statistics from scratch for the given deck.

        Args:
            deck: Deck to analyze

        Returns:
            Fresh DeckStatistics snapshot
        """
        stats = cls()
        weighted_mana = 0.0

        for entry in deck.entries.values():
            quantity = entry.quantity
            mana_value = entry.card.mana_value

            stats.total_cards += quantity
            weighted_mana += quantity * mana_value

            curve_key = '7+' if mana_value >= 7 else int(mana_value)
            stats.mana_curve[curve_key] = stats.mana_curve.get(curve_key, 0) + quantity

            colors = entry.card.effective_colors
            if colors:
                for color in colors:
                    stats.color_count[color] = stats.color_count.get(color, 0) + quantity
            else:
                stats.color_count[COLORLESS] += quantity

            stats.type_count[entry.category] = stats.type_count.get(entry.category, 0) + quantity

        if stats.total_cards:
            stats.average_mana_value = round(weighted_mana / stats.total_cards, 2)

        return stats

    @property
    def land_percentage(self) -> float:
        """Percentage of lands in the deck."""
        if self.total_cards == 0:
            return 0.0
        return (self.type_count.get('lands', 0) / self.total_cards) * 100
