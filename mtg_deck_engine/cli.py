"""Command-line interface for the MTG deck engine."""

import argparse
import sys
import logging
import time
from pathlib import Path
from typing import List, Optional

from . import __version__
from .checkout import CheckoutError, CheckoutService, DiscountCodeError
from .config import ConfigManager, EngineConfig, apply_env_overrides
from .deck_engine import DeckEngine, NotSignedInError
from .models import FORMAT_LIMITS, CardDataError, DeckEntryNotFoundError, MutationResult
from .output_manager import OutputManager
from .pricing import tier_label, total_price, unit_price
from .scryfall_service import ScryfallAPIError, ScryfallService
from .storage import DeckStore, JsonDocumentStore, StorageError


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argument parser with one sub-command per operation.

    Returns:
        Configured parser
    """
    parser = argparse.ArgumentParser(
        prog='mtg-deck-engine',
        description='Build format-legal MTG decks, price card orders and manage fulfilment',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s search "llanowar"
  %(prog)s new --name "Elves" --format modern
  %(prog)s add <deck-id> --name "Llanowar Elves"
  %(prog)s add <deck-id> --code DOM 168
  %(prog)s stats <deck-id>
  %(prog)s price 45
        """
    )

    parser.add_argument('--user', '-u', help='Signed-in user id (default: from config)')
    parser.add_argument('--data-dir', help='Directory holding decks, carts and orders')
    parser.add_argument('--no-cache', action='store_true', help='Disable Scryfall response caching')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose output')
    parser.add_argument('--quiet', '-q', action='store_true', help='Suppress all output except errors')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    commands = parser.add_subparsers(dest='command', metavar='command')
    commands.required = True

    search = commands.add_parser('search', help='Search cards by name')
    search.add_argument('term', help='Start of the card name')
    search.add_argument('--pages', type=int, default=1, help='Number of result pages to load (default: 1)')

    new = commands.add_parser('new', help='Create and save an empty deck')
    new.add_argument('--name', help='Deck name')
    new.add_argument('--format', choices=sorted(FORMAT_LIMITS), help='Deck format')
    new.add_argument('--description', default='', help='Free-text description')

    add = commands.add_parser('add', help='Add one copy of a card to a deck')
    add.add_argument('deck_id')
    target = add.add_mutually_exclusive_group(required=True)
    target.add_argument('--name', dest='card_name', help='Card name (fuzzy match)')
    target.add_argument('--code', nargs=2, metavar=('SET', 'NUMBER'), help='Exact printing by set code and collector number')

    qty = commands.add_parser('qty', help='Change the quantity of a card in a deck')
    qty.add_argument('deck_id')
    qty.add_argument('card_id')
    qty.add_argument('delta', type=int, help='Signed change, e.g. 1 or -1')

    remove = commands.add_parser('remove', help='Remove a card from a deck')
    remove.add_argument('deck_id')
    remove.add_argument('card_id')

    clear = commands.add_parser('clear', help='Remove every card and reset deck metadata')
    clear.add_argument('deck_id')
    clear.add_argument('--yes', action='store_true', help='Confirm clearing the deck')

    rename = commands.add_parser('rename', help='Rename a deck')
    rename.add_argument('deck_id')
    rename.add_argument('name')

    fmt = commands.add_parser('format', help='Change the format of a deck')
    fmt.add_argument('deck_id')
    fmt.add_argument('format', choices=sorted(FORMAT_LIMITS))

    stats = commands.add_parser('stats', help='Show deck statistics')
    stats.add_argument('deck_id')

    export = commands.add_parser('export', help='Export a deck as a text list')
    export.add_argument('deck_id')
    export.add_argument('--output-dir', '-o', help='Write the list to a file in this directory instead of stdout')

    commands.add_parser('list', help="List the user's decks")

    delete = commands.add_parser('delete', help='Delete a saved deck')
    delete.add_argument('deck_id')
    delete.add_argument('--yes', action='store_true', help='Confirm deleting the deck')

    price = commands.add_parser('price', help='Show the tier price for a number of cards')
    price.add_argument('quantity', type=int)

    cart_add = commands.add_parser('cart-add-deck', help="Add a deck's cards to the user's cart")
    cart_add.add_argument('deck_id')

    checkout = commands.add_parser('checkout', help="Price the user's cart for payment")
    checkout.add_argument('--discount-code', help='Discount code to apply')
    checkout.add_argument('--session-id', help='Record the order for this completed payment session')
    checkout.add_argument('--email', help='Customer email reported by the payment processor')

    issue = commands.add_parser('issue-code', help='Issue a single-use discount code (admin)')
    issue.add_argument('percent', type=float)
    issue.add_argument('--code', help='Explicit code (default: random)')

    orders = commands.add_parser('orders', help='List orders')
    orders.add_argument('--all', action='store_true', help='List orders of every user (admin)')

    ship = commands.add_parser('ship', help='Mark an order as shipped (admin)')
    ship.add_argument('order_id')

    cache = commands.add_parser('cache', help='Show or clear the Scryfall response cache')
    cache.add_argument('--clear', action='store_true', help='Delete every cached card')

    return parser


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose and args.quiet:
        parser.error("--verbose and --quiet cannot be used together")

    if args.command == 'price' and args.quantity < 0:
        parser.error("quantity must be non-negative")

    if args.command == 'search' and args.pages < 1:
        parser.error("--pages must be at least 1")

    return args


def setup_logging(verbose: bool = False, quiet: bool = False, log_dir: Optional[Path] = None) -> None:
    """
    Set up logging for debugging and user information.

    Args:
        verbose: Enable verbose logging with detailed operation reporting
        quiet: Enable quiet mode (errors only)
        log_dir: Directory for the verbose-mode log file (default: ~/.mtg_deck_engine/logs)
    """
    if quiet:
        level = logging.ERROR
        format_str = '%(levelname)s: %(message)s'
    elif verbose:
        level = logging.DEBUG
        format_str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    else:
        level = logging.WARNING
        format_str = '%(levelname)s: %(message)s'

    class MultilineFormatter(logging.Formatter):
        def format(self, record):
            formatted = super().format(record)
            if '\n' in formatted:
                lines = formatted.split('\n')
                return '\n'.join([lines[0]] + ['  ' + line for line in lines[1:]])
            return formatted

    logging.basicConfig(
        level=level,
        format=format_str,
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=[logging.StreamHandler(sys.stderr)]
    )

    for handler in logging.root.handlers:
        handler.setFormatter(MultilineFormatter(format_str, datefmt='%Y-%m-%d %H:%M:%S'))

    app_logger = logging.getLogger('mtg_deck_engine')
    app_logger.setLevel(level)

    # Reduce noise from external libraries in non-verbose mode
    if not verbose:
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('requests').setLevel(logging.WARNING)

    if verbose:
        try:
            log_dir = Path(log_dir) if log_dir else Path.home() / '.mtg_deck_engine' / 'logs'
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"mtg_deck_engine_{time.strftime('%Y%m%d_%H%M%S')}.log"

            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(MultilineFormatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))

            logging.root.addHandler(file_handler)
            logging.info(f"Detailed logs will be saved to: {log_file}")

        except OSError as e:
            logging.warning(f"Could not set up file logging: {e}")


class CommandContext:
    """Collaborators shared by the command handlers, built lazily from configuration."""

    def __init__(self, args: argparse.Namespace, config: EngineConfig, config_manager: ConfigManager):
        self.args = args
        self.config = config
        self.user_id = args.user or config.default_user
        self.data_dir = Path(args.data_dir) if args.data_dir else config_manager.get_data_dir()
        self._config_manager = config_manager
        self._documents = None
        self._scryfall = None

    @property
    def documents(self) -> JsonDocumentStore:
        if self._documents is None:
            self._documents = JsonDocumentStore(self.data_dir)
        return self._documents

    @property
    def scryfall(self) -> ScryfallService:
        if self._scryfall is None:
            use_cache = self.config.scryfall_cache_enabled and not self.args.no_cache
            self._scryfall = ScryfallService(
                cache_dir=self._config_manager.get_cache_dir(),
                cache_duration_days=self.config.scryfall_cache_duration_days,
                max_retries=self.config.api_retry_attempts,
                timeout_seconds=self.config.api_timeout_seconds,
                use_cache=use_cache,
            )
        return self._scryfall

    def engine(self, deck_id: Optional[str] = None) -> DeckEngine:
        """Engine for the current user, with the given deck loaded."""
        engine = DeckEngine(
            store=DeckStore(self.documents),
            scryfall=self.scryfall,
            user_id=self.user_id,
        )
        if deck_id:
            engine.load(deck_id)
        return engine

    def checkout(self) -> CheckoutService:
        return CheckoutService(self.documents)

    def say(self, message: str = "") -> None:
        if not self.args.quiet:
            print(message)


def report_mutation(ctx: CommandContext, engine: DeckEngine, result: MutationResult, success: str) -> int:
    """Save the deck after an accepted mutation and print the outcome."""
    if not result:
        print(f"⚠ Rejected: {result.reason}")
        return 1

    engine.save()
    ctx.say(f"✓ {success} ({engine.deck.total_cards}/{engine.deck.limit} cards)")
    return 0


def cmd_search(ctx: CommandContext) -> int:
    page = ctx.scryfall.search_cards(ctx.args.term)
    cards = list(page.cards)

    for _ in range(ctx.args.pages - 1):
        if not page.has_more:
            break
        page = ctx.scryfall.search_cards(ctx.args.term, page_url=page.next_page)
        cards.extend(page.cards)

    if not cards:
        ctx.say("No cards found.")
        return 0

    for card in cards:
        ctx.say(f"{card.id}  {card.name}  [{card.set_code} #{card.collector_number}]  {card.type_line}  {card.mana_cost}")

    if page.has_more:
        ctx.say(f"... more results available (use --pages {ctx.args.pages + 1})")
    return 0


def cmd_new(ctx: CommandContext) -> int:
    engine = DeckEngine.new_deck(
        name=ctx.args.name or ctx.config.default_deck_name,
        deck_format=ctx.args.format or ctx.config.default_format,
        description=ctx.args.description,
        store=DeckStore(ctx.documents),
        user_id=ctx.user_id,
    )
    deck_id = engine.save()
    ctx.say(f"✓ Created deck '{engine.deck.name}' ({engine.deck.format}, limit {engine.deck.limit})")
    print(deck_id)
    return 0


def cmd_add(ctx: CommandContext) -> int:
    engine = ctx.engine(ctx.args.deck_id)
    if ctx.args.card_name:
        result = engine.add_by_name(ctx.args.card_name)
        label = ctx.args.card_name
    else:
        set_code, number = ctx.args.code
        result = engine.add_by_code(set_code, number)
        label = f"{set_code.upper()} #{number}"
    return report_mutation(ctx, engine, result, f"Added {label}")


def cmd_qty(ctx: CommandContext) -> int:
    engine = ctx.engine(ctx.args.deck_id)
    result = engine.update_quantity(ctx.args.card_id, ctx.args.delta)
    return report_mutation(ctx, engine, result, f"Updated {ctx.args.card_id}")


def cmd_remove(ctx: CommandContext) -> int:
    engine = ctx.engine(ctx.args.deck_id)
    if not engine.remove_card(ctx.args.card_id):
        print(f"Card {ctx.args.card_id} is not in the deck")
        return 1
    engine.save()
    ctx.say(f"✓ Removed {ctx.args.card_id} ({engine.deck.total_cards}/{engine.deck.limit} cards)")
    return 0


def cmd_clear(ctx: CommandContext) -> int:
    if not ctx.args.yes:
        print("Refusing to clear the deck without --yes")
        return 1
    engine = ctx.engine(ctx.args.deck_id)
    engine.clear_deck()
    # Keep the stored document, only its contents are reset
    engine.deck.deck_id = ctx.args.deck_id
    engine.save()
    ctx.say("✓ Deck cleared")
    return 0


def cmd_rename(ctx: CommandContext) -> int:
    engine = ctx.engine(ctx.args.deck_id)
    engine.rename(ctx.args.name)
    engine.save()
    ctx.say(f"✓ Renamed to '{engine.deck.name}'")
    return 0


def cmd_format(ctx: CommandContext) -> int:
    engine = ctx.engine(ctx.args.deck_id)
    result = engine.change_format(ctx.args.format)
    return report_mutation(ctx, engine, result, f"Format changed to {ctx.args.format}")


def cmd_stats(ctx: CommandContext) -> int:
    engine = ctx.engine(ctx.args.deck_id)
    output_manager = OutputManager(ctx.config.default_output_dir)
    print(f"{engine.deck.name} ({engine.deck.format})")
    print(output_manager.format_statistics(engine.statistics(), limit=engine.deck.limit))
    return 0


def cmd_export(ctx: CommandContext) -> int:
    engine = ctx.engine(ctx.args.deck_id)
    if ctx.args.output_dir:
        output_path = OutputManager(ctx.args.output_dir).write_deck_file(engine.deck)
        ctx.say(f"📁 Deck saved to: {output_path}")
    else:
        print(OutputManager(ctx.config.default_output_dir).format_deck_text(engine.deck))
    return 0


def cmd_list(ctx: CommandContext) -> int:
    decks = ctx.engine().list_decks()
    if not decks:
        ctx.say("No saved decks.")
        return 0

    for snapshot in decks:
        count = sum(card.get('quantity', 0) for card in snapshot.get('cards', []))
        print(f"{snapshot['deck_id']}  {snapshot.get('name')}  ({snapshot.get('format')}, {count} cards)")
    return 0


def cmd_delete(ctx: CommandContext) -> int:
    if not ctx.args.yes:
        print("Refusing to delete the deck without --yes")
        return 1
    if not ctx.engine().delete(ctx.args.deck_id):
        print(f"Deck {ctx.args.deck_id} not found")
        return 1
    ctx.say("✓ Deck deleted")
    return 0


def cmd_price(ctx: CommandContext) -> int:
    quantity = ctx.args.quantity
    symbol = ctx.config.currency_symbol
    print(f"Tier: {tier_label(quantity)}")
    print(f"Unit price: {unit_price(quantity):.2f} {symbol}")
    print(f"Total for {quantity} cards: {total_price(quantity):.2f} {symbol}")
    return 0


def cmd_cart_add_deck(ctx: CommandContext) -> int:
    engine = ctx.engine(ctx.args.deck_id)
    if not engine.deck.entries:
        print("The deck is empty.")
        return 1

    service = ctx.checkout()
    cart = service.load_cart(ctx.user_id)
    added, failed = cart.add_deck(engine.deck, lookup=ctx.scryfall.get_card_by_id)
    service.save_cart(cart)

    if failed:
        print(f"⚠ Added {added} cards to the cart. {failed} cards could not be added.")
        return 1
    ctx.say(f"✓ All cards added to the cart ({added} cards, {cart.total_qty} in cart)")
    return 0


def cmd_checkout(ctx: CommandContext) -> int:
    service = ctx.checkout()
    symbol = ctx.config.currency_symbol

    if ctx.args.session_id:
        existing = service.get_order(ctx.args.session_id)
        if existing is not None:
            if existing.user_id != ctx.user_id:
                raise CheckoutError(f"order {existing.order_id} belongs to another user")
            ctx.say(f"✓ Order {existing.order_id} already recorded "
                    f"({existing.total_qty} cards, {existing.total:.2f} {symbol}, {existing.shipping_status})")
            return 0

    quote = service.create_quote(ctx.user_id, ctx.args.discount_code)

    for item in quote.line_items:
        print(f"{item.quantity:3d} x {item.description}")
    print(f"Units: {quote.total_qty}")
    if quote.discount_percent:
        print(f"Unit price: {quote.unit_price:.2f} {symbol} "
              f"({quote.unit_price_original:.2f} {symbol} - {quote.discount_percent:g}% with {quote.discount_code})")
    else:
        print(f"Unit price: {quote.unit_price:.2f} {symbol}")
    print(f"Total: {quote.total:.2f} {symbol}")

    if ctx.args.session_id:
        order = service.complete_checkout(ctx.args.session_id, quote, customer_email=ctx.args.email)
        ctx.say(f"✓ Order {order.order_id} recorded ({order.shipping_status})")
    return 0


def cmd_issue_code(ctx: CommandContext) -> int:
    code = ctx.checkout().issue_discount_code(ctx.args.percent, ctx.args.code)
    ctx.say(f"✓ Issued {code.percent:g}% discount code")
    print(code.code)
    return 0


def cmd_orders(ctx: CommandContext) -> int:
    orders = ctx.checkout().list_orders(None if ctx.args.all else ctx.user_id)
    if not orders:
        ctx.say("No orders.")
        return 0

    for order in orders:
        created = time.strftime('%Y-%m-%d %H:%M', time.localtime(order.created_at))
        print(f"{order.order_id}  {created}  {order.user_id}  {order.total_qty} cards  "
              f"{order.total:.2f} {ctx.config.currency_symbol}  {order.shipping_status}")
    return 0


def cmd_ship(ctx: CommandContext) -> int:
    order = ctx.checkout().mark_shipped(ctx.args.order_id)
    ctx.say(f"✓ Order {order.order_id} shipped")
    return 0


def cmd_cache(ctx: CommandContext) -> int:
    if ctx.args.clear:
        ctx.scryfall.clear_cache()
        ctx.say("✓ Card cache cleared")
        return 0

    stats = ctx.scryfall.get_cache_stats()
    print(f"Cache directory: {stats['cache_dir']}")
    print(f"Cached cards: {stats['total_cached_cards']}")
    print(f"Size: {stats['total_size_mb']:.2f} MB")
    return 0


COMMANDS = {
    'search': cmd_search,
    'new': cmd_new,
    'add': cmd_add,
    'qty': cmd_qty,
    'remove': cmd_remove,
    'clear': cmd_clear,
    'rename': cmd_rename,
    'format': cmd_format,
    'stats': cmd_stats,
    'export': cmd_export,
    'list': cmd_list,
    'delete': cmd_delete,
    'price': cmd_price,
    'cart-add-deck': cmd_cart_add_deck,
    'checkout': cmd_checkout,
    'issue-code': cmd_issue_code,
    'orders': cmd_orders,
    'ship': cmd_ship,
    'cache': cmd_cache,
}


def handle_user_friendly_errors(error: Exception, verbose: bool = False) -> str:
    """
    Convert technical errors into user-friendly error messages.

    Args:
        error: Exception to convert
        verbose: Whether to include technical details

    Returns:
        User-friendly error message
    """
    if isinstance(error, NotSignedInError):
        return str(error)

    elif isinstance(error, DiscountCodeError):
        return f"Discount code: {error}"

    elif isinstance(error, CheckoutError):
        return f"Checkout: {error}"

    elif isinstance(error, DeckEntryNotFoundError):
        return f"Card {error.args[0]} is not in the deck"

    elif isinstance(error, ScryfallAPIError):
        return f"Card lookup failed: {error}. Check your connection and try again."

    elif isinstance(error, CardDataError):
        return f"Card data from Scryfall was incomplete: {error}"

    elif isinstance(error, StorageError):
        return f"Storage error: {error}"

    elif isinstance(error, KeyError):
        return f"Not found: {error.args[0]}"

    elif isinstance(error, ValueError):
        return f"Invalid input: {error}"

    else:
        if verbose:
            return f"Unexpected error: {error}"
        else:
            return "An unexpected error occurred. Use --verbose for more details."


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the deck engine CLI."""
    args = None

    try:
        args = parse_arguments(argv)

        config_manager = ConfigManager()
        config = apply_env_overrides(config_manager.get_config())

        setup_logging(args.verbose or config.verbose_output, args.quiet, config_manager.get_logs_dir())

        ctx = CommandContext(args, config, config_manager)
        exit_code = COMMANDS[args.command](ctx)

    except KeyboardInterrupt:
        if not (args and args.quiet):
            print("\n⚠ Operation cancelled by user")
        sys.exit(1)

    except Exception as e:
        verbose = bool(args and args.verbose)
        if verbose:
            logging.error(f"Error: {e}", exc_info=True)
        print(f"Error: {handle_user_friendly_errors(e, verbose)}")
        sys.exit(1)

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
