"""
Unit tests for MTG deck engine data models and deck rules.
"""

import random
import unittest

from card_factory import make_card
from mtg_deck_engine.models import (
    REASON_COMMANDER_PRESENT, REASON_COPY_LIMIT, REASON_DECK_FULL, REASON_SINGLETON,
    Card, CardDataError, Deck, DeckEntry, DeckEntryNotFoundError, DeckStatistics,
    MutationResult, classify_card, is_basic_land,
)


LLANOWAR_ELVES = dict(name="Llanowar Elves", type_line="Creature — Elf Druid", mana_value=1, colors=['G'])
FOREST = dict(name="Forest", type_line="Basic Land — Forest")


def filler(count, prefix="Filler"):
    """Distinct non-basic cards."""
    return [make_card(f"{prefix} {i}", "Sorcery", mana_value=2, card_id=f"{prefix.lower()}-{i}") for i in range(count)]


class TestCard(unittest.TestCase):
    """Test cases for Card creation and Scryfall parsing."""

    def test_from_scryfall_data(self):
        card = Card.from_scryfall_data({
            'id': 'abc', 'name': 'Llanowar Elves', 'mana_cost': '{G}', 'cmc': 1.0,
            'type_line': 'Creature — Elf Druid', 'colors': ['G'], 'color_identity': ['G'],
            'set': 'dom', 'set_name': 'Dominaria', 'collector_number': '168',
            'image_uris': {'normal': 'n.jpg', 'small': 's.jpg'}, 'prices': {'eur': '0.20'},
        })

        self.assertEqual(card.id, 'abc')
        self.assertEqual(card.set_code, 'DOM')
        self.assertEqual(card.mana_value, 1.0)
        self.assertEqual(card.image_url, 's.jpg')
        self.assertEqual(card.price_eur, 0.20)

    def test_double_faced_card_uses_front_face(self):
        card = Card.from_scryfall_data({
            'id': 'dfc', 'name': 'Delver of Secrets // Insectile Aberration', 'cmc': 1,
            'type_line': 'Creature — Human Wizard // Creature — Human Insect',
            'card_faces': [
                {'mana_cost': '{U}', 'colors': ['U'], 'image_uris': {'normal': 'front.jpg'}},
                {'mana_cost': '', 'colors': ['U'], 'image_uris': {'normal': 'back.jpg'}},
            ],
        })

        self.assertEqual(card.mana_cost, '{U}')
        self.assertEqual(card.colors, ['U'])
        self.assertEqual(card.image_url, 'front.jpg')

    def test_missing_id_or_name_is_rejected(self):
        with self.assertRaises(CardDataError):
            Card.from_scryfall_data({'name': 'No Id'})
        with self.assertRaises(CardDataError):
            Card(id='x', name='')

    def test_negative_mana_value_is_rejected(self):
        with self.assertRaises(CardDataError):
            Card(id='x', name='Broken', mana_value=-1)

    def test_effective_colors_falls_back_to_color_identity(self):
        card = make_card("Mox Emerald", "Artifact", color_identity=['G'])
        self.assertEqual(card.effective_colors, ['G'])


class TestClassification(unittest.TestCase):
    """Test cases for the ordered card classification rules."""

    def classify(self, type_line, deck_format='commander'):
        return classify_card(make_card("Test Card", type_line), deck_format)

    def test_legendary_creature_is_commander_only_in_commander(self):
        self.assertEqual(self.classify("Legendary Creature — Elf Druid"), 'commander')
        self.assertEqual(self.classify("Legendary Creature — Elf Druid", 'modern'), 'creatures')

    def test_first_match_wins(self):
        self.assertEqual(self.classify("Legendary Artifact Creature — Golem"), 'commander')
        self.assertEqual(self.classify("Legendary Artifact Creature — Golem", 'legacy'), 'creatures')
        self.assertEqual(self.classify("Artifact Creature — Golem"), 'creatures')
        self.assertEqual(self.classify("Enchantment Creature — God"), 'creatures')
        self.assertEqual(self.classify("Artifact Land"), 'artifacts')
        self.assertEqual(self.classify("Kindred Instant — Elf"), 'instants')

    def test_each_category(self):
        self.assertEqual(self.classify("Legendary Planeswalker — Jace"), 'planeswalkers')
        self.assertEqual(self.classify("Instant"), 'instants')
        self.assertEqual(self.classify("Sorcery"), 'sorceries')
        self.assertEqual(self.classify("Artifact — Equipment"), 'artifacts')
        self.assertEqual(self.classify("Enchantment — Aura"), 'enchantments')
        self.assertEqual(self.classify("Land"), 'lands')
        self.assertEqual(self.classify("Conspiracy"), 'other')

    def test_classification_is_case_insensitive(self):
        self.assertEqual(self.classify("LEGENDARY CREATURE — ELF"), 'commander')

    def test_basic_land_detection(self):
        self.assertTrue(is_basic_land(make_card("Forest", "Basic Land — Forest")))
        self.assertTrue(is_basic_land(make_card("Snow-Covered Forest", "Basic Snow Land — Forest")))
        self.assertFalse(is_basic_land(make_card("Dryad Arbor", "Land Creature — Forest Dryad")))


class TestDeckEntry(unittest.TestCase):

    def test_quantity_must_be_positive(self):
        with self.assertRaises(ValueError):
            DeckEntry(card=make_card(**FOREST), quantity=0, category='lands')

    def test_unknown_category_is_rejected(self):
        with self.assertRaises(ValueError):
            DeckEntry(card=make_card(**FOREST), quantity=1, category='tokens')


class TestDeckAddCard(unittest.TestCase):
    """Test cases for Deck.add_card legality rules."""

    def test_add_new_card(self):
        deck = Deck(format='modern')
        result = deck.add_card(make_card(**LLANOWAR_ELVES))

        self.assertTrue(result)
        self.assertEqual(result, MutationResult.ok())
        self.assertEqual(deck.total_cards, 1)
        self.assertEqual(deck.get_entry('llanowar-elves').category, 'creatures')

    def test_second_copy_increments_existing_entry(self):
        deck = Deck(format='modern')
        deck.add_card(make_card(**LLANOWAR_ELVES))
        deck.add_card(make_card(**LLANOWAR_ELVES))

        self.assertEqual(len(deck.entries), 1)
        self.assertEqual(deck.get_entry('llanowar-elves').quantity, 2)

    def test_commander_singleton(self):
        deck = Deck(format='commander')
        self.assertTrue(deck.add_card(make_card(**LLANOWAR_ELVES)))

        result = deck.add_card(make_card(**LLANOWAR_ELVES))

        self.assertFalse(result)
        self.assertEqual(result.reason, REASON_SINGLETON)
        self.assertEqual(deck.get_entry('llanowar-elves').quantity, 1)

    def test_four_copy_limit(self):
        deck = Deck(format='modern')
        for _ in range(4):
            self.assertTrue(deck.add_card(make_card(**LLANOWAR_ELVES)))

        result = deck.add_card(make_card(**LLANOWAR_ELVES))

        self.assertEqual(result.reason, REASON_COPY_LIMIT)
        self.assertEqual(deck.total_cards, 4)

    def test_basic_lands_are_exempt_from_copy_limits(self):
        commander_deck = Deck(format='commander')
        modern_deck = Deck(format='modern')
        for _ in range(20):
            self.assertTrue(commander_deck.add_card(make_card(**FOREST)))
            self.assertTrue(modern_deck.add_card(make_card(**FOREST)))

        self.assertEqual(commander_deck.get_entry('forest').quantity, 20)
        self.assertEqual(modern_deck.get_entry('forest').quantity, 20)

    def test_only_one_commander(self):
        deck = Deck(format='commander')
        self.assertTrue(deck.add_card(make_card("Ezuri, Renegade Leader", "Legendary Creature — Elf Warrior")))

        result = deck.add_card(make_card("Marwyn, the Nurturer", "Legendary Creature — Elf Druid"))

        self.assertEqual(result.reason, REASON_COMMANDER_PRESENT)
        self.assertEqual(len(deck.entries), 1)

    def test_legendary_creatures_are_plain_creatures_outside_commander(self):
        deck = Deck(format='standard')
        deck.add_card(make_card("Ezuri, Renegade Leader", "Legendary Creature — Elf Warrior"))
        self.assertTrue(deck.add_card(make_card("Marwyn, the Nurturer", "Legendary Creature — Elf Druid")))
        self.assertIsNone(deck.commander_entry)

    def test_deck_full(self):
        deck = Deck(format='modern')
        for card in filler(60):
            self.assertTrue(deck.add_card(card))

        result = deck.add_card(make_card(**FOREST))

        self.assertEqual(result.reason, REASON_DECK_FULL)
        self.assertEqual(deck.total_cards, 60)
        self.assertNotIn('forest', deck)

    def test_full_deck_rejects_basic_land_increment(self):
        deck = Deck(format='modern')
        for _ in range(60):
            deck.add_card(make_card(**FOREST))

        self.assertEqual(deck.add_card(make_card(**FOREST)).reason, REASON_DECK_FULL)

    def test_commander_deck_holds_one_hundred(self):
        deck = Deck(format='commander')
        for card in filler(100):
            self.assertTrue(deck.add_card(card))
        self.assertEqual(deck.add_card(make_card(**LLANOWAR_ELVES)).reason, REASON_DECK_FULL)

    def test_category_is_kept_from_insertion(self):
        deck = Deck(format='commander')
        deck.add_card(make_card("Ezuri, Renegade Leader", "Legendary Creature — Elf Warrior"))
        self.assertTrue(deck.change_format('modern'))

        deck.add_card(make_card("Ezuri, Renegade Leader", "Legendary Creature — Elf Warrior"))

        entry = deck.get_entry('ezuri-renegade-leader')
        self.assertEqual(entry.quantity, 2)
        self.assertEqual(entry.category, 'commander')


class TestDeckUpdateQuantity(unittest.TestCase):
    """Test cases for Deck.update_quantity, remove_card and clear."""

    def setUp(self):
        self.deck = Deck(format='modern')
        self.deck.add_card(make_card(**LLANOWAR_ELVES))
        self.deck.add_card(make_card(**FOREST))

    def test_increase_and_decrease(self):
        self.assertTrue(self.deck.update_quantity('llanowar-elves', 2))
        self.assertEqual(self.deck.get_entry('llanowar-elves').quantity, 3)

        self.assertTrue(self.deck.update_quantity('llanowar-elves', -1))
        self.assertEqual(self.deck.get_entry('llanowar-elves').quantity, 2)

    def test_reaching_zero_removes_entry(self):
        self.assertTrue(self.deck.update_quantity('llanowar-elves', -1))
        self.assertNotIn('llanowar-elves', self.deck)

        self.assertTrue(self.deck.update_quantity('forest', -5))
        self.assertEqual(len(self.deck.entries), 0)

    def test_copy_limit_applies(self):
        result = self.deck.update_quantity('llanowar-elves', 4)

        self.assertEqual(result.reason, REASON_COPY_LIMIT)
        self.assertEqual(self.deck.get_entry('llanowar-elves').quantity, 1)

    def test_singleton_applies_in_commander(self):
        deck = Deck(format='commander')
        deck.add_card(make_card(**LLANOWAR_ELVES))
        deck.add_card(make_card(**FOREST))

        self.assertEqual(deck.update_quantity('llanowar-elves', 1).reason, REASON_SINGLETON)
        self.assertTrue(deck.update_quantity('forest', 30))
        self.assertEqual(deck.get_entry('forest').quantity, 31)

    def test_deck_limit_applies_to_the_whole_delta(self):
        self.deck.update_quantity('forest', 57)
        self.assertEqual(self.deck.total_cards, 59)

        self.assertEqual(self.deck.update_quantity('forest', 2).reason, REASON_DECK_FULL)
        self.assertTrue(self.deck.update_quantity('forest', 1))
        self.assertEqual(self.deck.total_cards, 60)

    def test_random_mutation_sequences_keep_deck_legal(self):
        pool = [
            make_card(**FOREST),
            make_card(**LLANOWAR_ELVES),
            make_card("Lightning Bolt", "Instant", mana_value=1, colors=['R']),
            make_card("Sol Ring", "Artifact", mana_value=1),
            make_card("Ezuri, Renegade Leader", "Legendary Creature — Elf Warrior", mana_value=3, colors=['G']),
            make_card("Marwyn, the Nurturer", "Legendary Creature — Elf Druid", mana_value=3, colors=['G']),
        ] + filler(40, prefix="Spell")

        for deck_format in ('commander', 'modern'):
            rng = random.Random(f"deck-{deck_format}")
            deck = Deck(format=deck_format)
            reasons = set()

            for step in range(3000):
                action = rng.random()
                if action < 0.6 or not deck.entries:
                    result = deck.add_card(rng.choice(pool))
                elif action < 0.95:
                    card_id = rng.choice(list(deck.entries))
                    result = deck.update_quantity(card_id, rng.choice([-3, -1, 1, 2, 5, 30]))
                else:
                    deck.remove_card(rng.choice(list(deck.entries)))
                    result = MutationResult.ok()
                reasons.add(result.reason)

                context = f"{deck_format} step {step}"
                self.assertLessEqual(deck.total_cards, deck.limit, context)
                self.assertTrue(all(entry.quantity >= 1 for entry in deck.entries.values()), context)
                commanders = [entry for entry in deck.entries.values() if entry.category == 'commander']
                self.assertLessEqual(len(commanders), 1, context)
                for entry in deck.entries.values():
                    if is_basic_land(entry.card):
                        continue
                    copy_limit = 1 if deck_format == 'commander' else 4
                    self.assertLessEqual(entry.quantity, copy_limit, context)

            self.assertIn(REASON_DECK_FULL, reasons)

    def test_unknown_card_raises(self):
        with self.assertRaises(DeckEntryNotFoundError):
            self.deck.update_quantity('missing', 1)

    def test_remove_card(self):
        self.assertTrue(self.deck.remove_card('llanowar-elves'))
        self.assertFalse(self.deck.remove_card('llanowar-elves'))
        self.assertEqual(self.deck.total_cards, 1)

    def test_clear_resets_metadata(self):
        self.deck.name = "Elves"
        self.deck.description = "Go wide"
        self.deck.deck_id = "abc"

        self.deck.clear()

        self.assertEqual(self.deck.total_cards, 0)
        self.assertEqual(self.deck.name, "My Deck")
        self.assertEqual(self.deck.description, "")
        self.assertEqual(self.deck.format, 'commander')
        self.assertIsNone(self.deck.deck_id)


class TestDeckFormatAndSnapshot(unittest.TestCase):
    """Test cases for format changes and snapshot round trips."""

    def test_unknown_format_raises(self):
        with self.assertRaises(ValueError):
            Deck(format='pauper')
        with self.assertRaises(ValueError):
            Deck().change_format('pauper')

    def test_change_format_rejects_oversized_deck(self):
        deck = Deck(format='commander')
        for card in filler(70):
            deck.add_card(card)

        result = deck.change_format('modern')

        self.assertEqual(result.reason, REASON_DECK_FULL)
        self.assertEqual(deck.format, 'commander')

    def test_change_format_rejects_copies_breaking_singleton(self):
        deck = Deck(format='modern')
        deck.add_card(make_card(**LLANOWAR_ELVES))
        deck.add_card(make_card(**LLANOWAR_ELVES))

        result = deck.change_format('commander')

        self.assertFalse(result)
        self.assertTrue(result.reason.startswith(REASON_SINGLETON))
        self.assertEqual(deck.format, 'modern')

    def test_snapshot_round_trip(self):
        deck = Deck(name="Elves", format='modern', description="Go wide", deck_id="d1")
        deck.add_card(make_card(**LLANOWAR_ELVES))
        deck.add_card(make_card(**LLANOWAR_ELVES))
        deck.add_card(make_card(**FOREST))

        restored = Deck.from_snapshot(deck.to_snapshot())

        self.assertEqual(restored.name, "Elves")
        self.assertEqual(restored.format, 'modern')
        self.assertEqual(restored.deck_id, "d1")
        self.assertEqual(restored.get_entry('llanowar-elves').quantity, 2)
        self.assertEqual(restored.get_entry('llanowar-elves').card.colors, ['G'])
        self.assertEqual(restored.get_entry('forest').category, 'lands')

    def test_snapshot_reclassifies_invalid_commander(self):
        snapshot = {
            'name': "Broken", 'format': 'commander',
            'cards': [{
                'card_id': 'llanowar-elves', 'name': 'Llanowar Elves', 'quantity': 1,
                'category': 'commander', 'type_line': 'Creature — Elf Druid',
            }],
        }

        deck = Deck.from_snapshot(snapshot)

        self.assertEqual(deck.get_entry('llanowar-elves').category, 'creatures')
        self.assertIsNone(deck.commander_entry)

    def test_entries_by_category_uses_canonical_order(self):
        deck = Deck(format='commander')
        deck.add_card(make_card(**FOREST))
        deck.add_card(make_card("Lightning Bolt", "Instant"))
        deck.add_card(make_card("Ezuri, Renegade Leader", "Legendary Creature — Elf Warrior"))

        self.assertEqual(list(deck.entries_by_category()), ['commander', 'instants', 'lands'])


class TestDeckStatistics(unittest.TestCase):
    """Test cases for DeckStatistics."""

    def test_empty_deck(self):
        stats = DeckStatistics.from_deck(Deck())

        self.assertEqual(stats.total_cards, 0)
        self.assertEqual(stats.average_mana_value, 0.0)
        self.assertEqual(stats.mana_curve, {})
        self.assertEqual(stats.color_count, {'W': 0, 'U': 0, 'B': 0, 'R': 0, 'G': 0, 'Colorless': 0})
        self.assertEqual(stats.land_percentage, 0.0)

    def test_statistics_are_weighted_by_quantity(self):
        deck = Deck(format='modern')
        deck.add_card(make_card(**LLANOWAR_ELVES))
        deck.add_card(make_card(**LLANOWAR_ELVES))
        deck.add_card(make_card("Emrakul, the Aeons Torn", "Legendary Creature — Eldrazi", mana_value=15))
        deck.add_card(make_card("Lightning Helix", "Instant", mana_value=2, colors=['R', 'W']))

        stats = DeckStatistics.from_deck(deck)

        self.assertEqual(stats.total_cards, 4)
        self.assertEqual(stats.average_mana_value, 4.75)
        self.assertEqual(stats.mana_curve, {1: 2, '7+': 1, 2: 1})
        self.assertEqual(stats.color_count['G'], 2)
        self.assertEqual(stats.color_count['R'], 1)
        self.assertEqual(stats.color_count['W'], 1)
        self.assertEqual(stats.color_count['Colorless'], 1)
        self.assertEqual(stats.type_count, {'creatures': 3, 'instants': 1})

    def test_average_is_rounded_to_two_places(self):
        deck = Deck(format='modern')
        deck.add_card(make_card(**LLANOWAR_ELVES))
        deck.add_card(make_card(**LLANOWAR_ELVES))
        deck.add_card(make_card("Craterhoof Behemoth", "Creature — Beast", mana_value=8, colors=['G']))

        self.assertEqual(DeckStatistics.from_deck(deck).average_mana_value, 3.33)

    def test_land_percentage(self):
        deck = Deck(format='modern')
        deck.add_card(make_card(**LLANOWAR_ELVES))
        deck.add_card(make_card(**FOREST))
        deck.add_card(make_card(**FOREST))
        deck.add_card(make_card(**FOREST))

        self.assertEqual(DeckStatistics.from_deck(deck).land_percentage, 75.0)


if __name__ == '__main__':
    unittest.main()
