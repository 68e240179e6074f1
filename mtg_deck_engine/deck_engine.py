"""
Deck editing service.

DeckEngine owns one in-memory Deck between explicit load and save calls.
It is the single mutation surface used by the command line front end: every
change goes through the Deck rule methods, every rejection is logged and
returned to the caller with its reason, and nothing is persisted until
save() is called.
"""

import logging
from typing import Any, Dict, List, Optional

from .models import (
    DEFAULT_DECK_NAME, DEFAULT_FORMAT, REASON_CARD_NOT_FOUND,
    Card, Deck, DeckStatistics, MutationResult,
)
from .scryfall_service import ScryfallService
from .storage import DeckStore


class NotSignedInError(Exception):
    """Raised when a persistence operation needs a signed-in user and there is none."""
    pass


class DeckEngine:
    """Single-owner service around a Deck with explicit persistence."""

    def __init__(
        self,
        deck: Optional[Deck] = None,
        store: Optional[DeckStore] = None,
        scryfall: Optional[ScryfallService] = None,
        user_id: Optional[str] = None,
    ):
        """
        Initialize the engine.

        Args:
            deck: Deck to edit (defaults to a new empty deck)
            store: Persistence collaborator for save/load
            scryfall: Card lookup collaborator for add_by_name/add_by_code
            user_id: Signed-in user, or None when signed out
        """
        self.logger = logging.getLogger(__name__)
        self.deck = deck or Deck()
        self.store = store
        self.scryfall = scryfall
        self.user_id = user_id

    @classmethod
    def new_deck(cls, name: str = DEFAULT_DECK_NAME, deck_format: str = DEFAULT_FORMAT, description: str = "", **kwargs) -> 'DeckEngine':
        return cls(deck=Deck(name=name, format=deck_format, description=description), **kwargs)

    @property
    def total_quantity(self) -> int:
        """Aggregate quantity read by the cart and checkout."""
        return self.deck.total_cards

    def _report(self, action: str, result: MutationResult) -> MutationResult:
        if result.accepted:
            self.logger.debug(f"{action}: ok ({self.deck.total_cards}/{self.deck.limit})")
        else:
            self.logger.info(f"{action} rejected: {result.reason}")
        return result

    # Mutations

    def add_card(self, card: Card) -> MutationResult:
        """Add one copy of a card. See Deck.add_card."""
        return self._report(f"Add {card.name}", self.deck.add_card(card))

    def add_by_name(self, name: str) -> MutationResult:
        """
        Look up a card by name and add one copy.

        Raises:
            ScryfallAPIError: If the lookup service fails
        """
        card = self._require_scryfall().get_card_data(name)
        if card is None:
            return self._report(f"Add '{name}'", MutationResult.rejected(REASON_CARD_NOT_FOUND))
        return self.add_card(card)

    def add_by_code(self, set_code: str, collector_number: str) -> MutationResult:
        """
        Look up an exact printing by set code and collector number and add one copy.

        Raises:
            ScryfallAPIError: If the lookup service fails
        """
        card = self._require_scryfall().get_card_by_code(set_code, collector_number)
        if card is None:
            return self._report(
                f"Add {set_code.upper()} #{collector_number}",
                MutationResult.rejected(REASON_CARD_NOT_FOUND),
            )
        return self.add_card(card)

    def update_quantity(self, card_id: str, delta: int) -> MutationResult:
        """Change an entry's quantity by delta. See Deck.update_quantity."""
        return self._report(f"Change {card_id} by {delta:+d}", self.deck.update_quantity(card_id, delta))

    def remove_card(self, card_id: str) -> bool:
        removed = self.deck.remove_card(card_id)
        self.logger.debug(f"Remove {card_id}: {'removed' if removed else 'not in deck'}")
        return removed

    def clear_deck(self) -> None:
        """Empty the deck and reset its metadata. Confirmation is the caller's job."""
        self.deck.clear()
        self.logger.info("Deck cleared")

    def rename(self, name: str) -> None:
        self.deck.name = name.strip() or DEFAULT_DECK_NAME

    def describe(self, description: str) -> None:
        self.deck.description = description

    def change_format(self, new_format: str) -> MutationResult:
        return self._report(f"Change format to {new_format}", self.deck.change_format(new_format))

    def statistics(self) -> DeckStatistics:
        return DeckStatistics.from_deck(self.deck)

    # Persistence

    def save(self) -> str:
        """
        Save the deck for the signed-in user.

        Returns:
            The deck id (assigned on first save)

        Raises:
            NotSignedInError: If no user is signed in
            StorageError: If the store cannot write the snapshot
        """
        store = self._require_store()
        deck_id = store.save(self.user_id, self.deck.to_snapshot())
        self.deck.deck_id = deck_id
        return deck_id

    def load(self, deck_id: str) -> Deck:
        """
        Replace the in-memory deck with a stored one. Unsaved edits are discarded.

        Raises:
            NotSignedInError: If no user is signed in
            KeyError: If the user owns no deck with this id
        """
        store = self._require_store()
        snapshot = store.get(deck_id)
        if snapshot is None or snapshot.get('user_id') != self.user_id:
            raise KeyError(f"Deck {deck_id} not found")

        self.deck = Deck.from_snapshot(snapshot)
        self.logger.info(f"Loaded deck '{self.deck.name}' ({deck_id}) with {self.deck.total_cards} cards")
        return self.deck

    def list_decks(self) -> List[Dict[str, Any]]:
        """Snapshots of every deck the signed-in user owns."""
        return self._require_store().load(self.user_id)

    def delete(self, deck_id: str) -> bool:
        """
        Delete a stored deck; the in-memory deck is cleared if it is the one deleted.

        Raises:
            NotSignedInError: If no user is signed in
        """
        store = self._require_store()
        snapshot = store.get(deck_id)
        if snapshot is None or snapshot.get('user_id') != self.user_id:
            return False

        deleted = store.delete(deck_id)
        if deleted and self.deck.deck_id == deck_id:
            self.clear_deck()
        return deleted

    def _require_store(self) -> DeckStore:
        if not self.user_id:
            raise NotSignedInError("You must be signed in to save or load decks")
        if self.store is None:
            raise RuntimeError("DeckEngine has no deck store configured")
        return self.store

    def _require_scryfall(self) -> ScryfallService:
        if self.scryfall is None:
            self.scryfall = ScryfallService()
        return self.scryfall
