"""MTG Deck Engine

Deck-construction rules engine for Magic: The Gathering: format-legal deck
editing, card classification, deck statistics, and the volume-tier pricing,
cart and order fulfilment of a card-singles storefront.
"""

__version__ = "0.1.0"
__author__ = "MTG Deck Engine"
__description__ = "Build format-legal MTG decks and price card orders"
