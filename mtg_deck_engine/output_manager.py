"""Output manager for deck exports and statistics summaries."""

import re
from datetime import datetime
from pathlib import Path
from typing import List

from .models import COLORLESS, COLORS, Deck, DeckStatistics


class OutputManager:
    """Handles deck text export, file output and statistics formatting."""

    def __init__(self, output_directory: str = "."):
        """
        Initialize output manager.

        Args:
            output_directory: Directory where deck files will be written
        """
        self.output_directory = Path(output_directory)
        self.output_directory.mkdir(parents=True, exist_ok=True)

    def generate_filename(self, deck_name: str) -> str:
        """
        Generate unique filename for deck output with timestamp handling.

        Args:
            deck_name: Name of the deck

        Returns:
            Unique filename with timestamp if needed
        """
        safe_name = self._sanitize_filename(deck_name)
        base_filename = f"{safe_name}.txt"

        if not (self.output_directory / base_filename).exists():
            return base_filename

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return f"{safe_name}_{timestamp}.txt"

    def _sanitize_filename(self, name: str) -> str:
        """
        Sanitize a deck name to be safe for use as a filename.

        Args:
            name: Raw string to sanitize

        Returns:
            Sanitized filename-safe string
        """
        # Whitespace runs become underscores, other special characters are dropped
        sanitized = re.sub(r'\s+', '_', name.strip())
        sanitized = "".join(c for c in sanitized if c.isalnum() or c in "_-")

        if not sanitized:
            sanitized = "deck"

        # Limit length to avoid filesystem issues
        return sanitized[:50]

    def format_deck_text(self, deck: Deck) -> str:
        """
        Format a deck as a plain-text list grouped by category.

        Args:
            deck: Deck to export

        Returns:
            Text ending with the 'Total: <n> cards' line
        """
        lines = [deck.name, f"Format: {deck.format}", ""]

        for category, entries in deck.entries_by_category().items():
            lines.append("")
            lines.append(f"{category[0].upper()}{category[1:]}:")
            for entry in entries:
                lines.append(f"{entry.quantity} {entry.card.name}")

        lines.append("")
        lines.append(f"Total: {deck.total_cards} cards")

        return "\n".join(lines)

    def write_deck_file(self, deck: Deck) -> Path:
        """
        Write the deck's text export to the output directory.

        Args:
            deck: Deck to export

        Returns:
            Path to the written file
        """
        output_path = self.output_directory / self.generate_filename(deck.name)

        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(self.format_deck_text(deck))
            f.write("\n")

        return output_path

    def format_statistics(self, statistics: DeckStatistics, limit: int = 0) -> str:
        """
        Format deck statistics as a readable summary.

        Args:
            statistics: Statistics to format
            limit: Deck card limit, shown next to the total when given

        Returns:
            Multi-line summary
        """
        lines: List[str] = []

        total = f"{statistics.total_cards}/{limit}" if limit else str(statistics.total_cards)
        lines.append(f"Total Cards: {total}")
        lines.append(f"Average Mana Value: {statistics.average_mana_value:.2f}")
        lines.append("")

        lines.append("MANA CURVE:")
        for key in list(range(0, 7)) + ['7+']:
            count = statistics.mana_curve.get(key, 0)
            if count > 0:
                bar = "█" * min(count, 15)
                lines.append(f"  {str(key):>2}: {count:2d} {bar}")
        lines.append("")

        lines.append("COLORS:")
        for color in COLORS + (COLORLESS,):
            count = statistics.color_count.get(color, 0)
            if count > 0:
                lines.append(f"  {color}: {count}")
        lines.append("")

        lines.append("CARD TYPES:")
        for category, count in statistics.type_count.items():
            percentage = (count / statistics.total_cards) * 100 if statistics.total_cards else 0.0
            lines.append(f"  {category.title()}: {count} ({percentage:.1f}%)")

        return "\n".join(lines)
