"""
Checkout, order fulfilment and discount codes.

The payment processor is an external collaborator: this module prices the
cart into a quote the processor can charge, and records the order once the
processor reports the checkout as completed.
"""

import logging
import secrets
import string
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .cart import Cart
from .pricing import CURRENCY, apply_discount, tier_label, to_cents, total_price, unit_price
from .storage import JsonDocumentStore


SHIPPING_PENDING = "pending"
SHIPPING_SHIPPED = "shipped"


class CheckoutError(Exception):
    """Raised when a checkout cannot proceed; the message is shown to the user."""
    pass


class DiscountCodeError(CheckoutError):
    """Raised when a discount code cannot be applied or issued."""
    pass


@dataclass
class DiscountCode:
    """A single-use percentage discount code."""
    code: str
    percent: float
    used: bool = False
    used_at: Optional[float] = None
    used_by: Optional[str] = None
    last_session_id: Optional[str] = None
    created_at: float = field(default_factory=time.time)

    @staticmethod
    def normalize(code: str) -> str:
        return code.strip().upper()

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DiscountCode':
        return cls(**{key: data[key] for key in cls.__dataclass_fields__ if key in data})


@dataclass
class LineItem:
    """A line of the charge sent to the payment processor."""
    card_id: str
    description: str
    quantity: int
    unit_amount: int  # cents
    set_code: str = ""
    set_name: str = ""
    collector_number: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class CheckoutQuote:
    """Priced cart ready to be charged."""
    user_id: str
    total_qty: int
    unit_price_original: float
    unit_price: float
    line_items: List[LineItem]
    discount_percent: float = 0.0
    discount_code: str = ""
    currency: str = CURRENCY

    @property
    def total(self) -> float:
        return total_price(self.total_qty, self.unit_price)

    @property
    def amount_total(self) -> int:
        """Total charge in cents, as the processor computes it from the line items."""
        return sum(item.unit_amount * item.quantity for item in self.line_items)

    @property
    def metadata(self) -> Dict[str, str]:
        """String metadata attached to the payment session and read back on completion."""
        return {
            'user_id': self.user_id,
            'total_qty': str(self.total_qty),
            'unit_price': str(self.unit_price),
            'unit_price_original': str(self.unit_price_original),
            'discount_percent': str(self.discount_percent),
            'discount_code': self.discount_code,
        }


@dataclass
class Order:
    """A paid order awaiting or past fulfilment."""
    order_id: str
    user_id: str
    total_qty: int
    total: float
    unit_price: float
    unit_price_original: float
    tier: str
    items: List[Dict[str, Any]]
    payment_status: str = "paid"
    amount_total: int = 0
    currency: str = CURRENCY
    discount_code: Optional[str] = None
    discount_percent: float = 0.0
    customer_email: Optional[str] = None
    shipping_status: str = SHIPPING_PENDING
    created_at: float = field(default_factory=time.time)
    shipped_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Order':
        return cls(**{key: data[key] for key in cls.__dataclass_fields__ if key in data})


class CheckoutService:
    """Carts, checkout quotes, order records and discount codes on top of a document store."""

    CARTS = "carts"
    ORDERS = "orders"
    DISCOUNT_CODES = "discount_codes"

    CODE_LENGTH = 8

    def __init__(self, store: JsonDocumentStore):
        self.store = store
        self.logger = logging.getLogger(__name__)

    # Carts

    def load_cart(self, user_id: str) -> Cart:
        data = self.store.get(self.CARTS, user_id)
        return Cart.from_dict(data) if data else Cart(user_id=user_id)

    def save_cart(self, cart: Cart) -> None:
        self.store.put(self.CARTS, cart.user_id, cart.to_dict())

    # Checkout

    def create_quote(self, user_id: str, discount_code: Optional[str] = None) -> CheckoutQuote:
        """
        Price the user's cart for checkout.

        Args:
            user_id: Signed-in user whose cart is charged
            discount_code: Optional discount code typed by the user

        Returns:
            CheckoutQuote with per-line amounts in cents

        Raises:
            CheckoutError: If the cart is empty
            DiscountCodeError: If the discount code is unknown, used or has no valid percent
        """
        cart = self.load_cart(user_id)
        total_qty = cart.total_qty
        if total_qty == 0:
            raise CheckoutError("cart is empty")

        original_price = unit_price(total_qty)

        discount_percent = 0.0
        normalized_code = ""
        if discount_code and discount_code.strip():
            code = self.validate_discount_code(discount_code)
            discount_percent = code.percent
            normalized_code = code.code

        price = apply_discount(original_price, discount_percent)
        unit_amount = to_cents(price)

        line_items = [
            LineItem(
                card_id=item.card_id,
                description=item.display_name,
                quantity=item.qty,
                unit_amount=unit_amount,
                set_code=item.set_code,
                set_name=item.set_name,
                collector_number=item.collector_number,
            )
            for item in cart.line_items()
        ]

        quote = CheckoutQuote(
            user_id=user_id,
            total_qty=total_qty,
            unit_price_original=original_price,
            unit_price=price,
            line_items=line_items,
            discount_percent=discount_percent,
            discount_code=normalized_code,
        )
        self.logger.info(
            f"Quote for {user_id}: {total_qty} units at {price:.2f} "
            f"(tier {original_price:.2f}, discount {discount_percent:g}%) = {quote.total:.2f}"
        )
        return quote

    def complete_checkout(
        self,
        session_id: str,
        quote: CheckoutQuote,
        payment_status: str = "paid",
        customer_email: Optional[str] = None,
    ) -> Order:
        """
        Record the order for a completed payment session.

        Called when the payment processor reports the session as completed.
        A session that already produced an order returns that order unchanged.

        Args:
            session_id: Payment session id, used as order id
            quote: The quote the session was created from
            payment_status: Status reported by the processor
            customer_email: Customer email reported by the processor

        Returns:
            The recorded order
        """
        existing = self.store.get(self.ORDERS, session_id)
        if existing is not None:
            self.logger.info(f"Order {session_id} already recorded, ignoring repeated completion")
            return Order.from_dict(existing)

        order = Order(
            order_id=session_id,
            user_id=quote.user_id,
            total_qty=quote.total_qty,
            total=quote.total,
            unit_price=quote.unit_price,
            unit_price_original=quote.unit_price_original,
            tier=tier_label(quote.total_qty),
            items=[
                {
                    'card_id': item.card_id,
                    'name': item.description,
                    'qty': item.quantity,
                    'set': item.set_code,
                    'set_name': item.set_name or item.set_code,
                    'collector_number': item.collector_number,
                }
                for item in quote.line_items
            ],
            payment_status=payment_status,
            amount_total=quote.amount_total,
            discount_code=quote.discount_code or None,
            discount_percent=quote.discount_percent,
            customer_email=customer_email,
        )
        self.store.put(self.ORDERS, session_id, order.to_dict())

        cart = self.load_cart(quote.user_id)
        cart.clear()
        self.save_cart(cart)

        self.logger.info(f"Recorded order {session_id} for {quote.user_id}: {order.total_qty} units, {order.total:.2f}")

        if quote.discount_code:
            self._mark_code_used(quote.discount_code, quote.user_id, session_id)

        return order

    def get_order(self, order_id: str) -> Optional[Order]:
        data = self.store.get(self.ORDERS, order_id)
        return Order.from_dict(data) if data is not None else None

    # Admin dashboard

    def list_orders(self, user_id: Optional[str] = None) -> List[Order]:
        """List orders, optionally only those of one user, newest first."""
        filters = {'user_id': user_id} if user_id else {}
        orders = [Order.from_dict(data) for data in self.store.query(self.ORDERS, **filters)]
        return sorted(orders, key=lambda order: order.created_at, reverse=True)

    def mark_shipped(self, order_id: str) -> Order:
        """
        Mark an order as shipped.

        Raises:
            CheckoutError: If no order has this id
        """
        data = self.store.get(self.ORDERS, order_id)
        if data is None:
            raise CheckoutError(f"order {order_id} not found")

        order = Order.from_dict(data)
        if order.shipping_status != SHIPPING_SHIPPED:
            order.shipping_status = SHIPPING_SHIPPED
            order.shipped_at = time.time()
            self.store.put(self.ORDERS, order_id, order.to_dict())
            self.logger.info(f"Order {order_id} marked as shipped")
        return order

    # Discount codes

    def issue_discount_code(self, percent: float, code: Optional[str] = None) -> DiscountCode:
        """
        Create a new single-use discount code.

        Args:
            percent: Discount percentage, greater than 0 and at most 100
            code: Explicit code; a random one is generated when omitted

        Raises:
            DiscountCodeError: If the percent is out of range, the code is not
                alphanumeric or the code already exists
        """
        if not 0 < percent <= 100:
            raise DiscountCodeError(f"discount percent must be between 0 and 100 (got {percent})")

        if code:
            code = DiscountCode.normalize(code)
            if not code.isalnum():
                raise DiscountCodeError(f"discount codes may only contain letters and digits (got {code!r})")
        else:
            alphabet = string.ascii_uppercase + string.digits
            code = ''.join(secrets.choice(alphabet) for _ in range(self.CODE_LENGTH))

        if self.store.get(self.DISCOUNT_CODES, code) is not None:
            raise DiscountCodeError(f"discount code {code} already exists")

        discount = DiscountCode(code=code, percent=float(percent))
        self.store.put(self.DISCOUNT_CODES, code, discount.to_dict())
        self.logger.info(f"Issued discount code {code} ({percent:g}%)")
        return discount

    def validate_discount_code(self, code: str) -> DiscountCode:
        """
        Look up a discount code typed at checkout.

        Raises:
            DiscountCodeError: With the reason the code cannot be applied
        """
        normalized = DiscountCode.normalize(code)
        data = self.store.get(self.DISCOUNT_CODES, normalized) if normalized.isalnum() else None
        if data is None:
            raise DiscountCodeError("invalid discount code")

        discount = DiscountCode.from_dict(data)
        if discount.used:
            raise DiscountCodeError("this discount code has already been used")
        if not discount.percent or discount.percent <= 0:
            raise DiscountCodeError("this discount code has no valid discount")
        return discount

    def _mark_code_used(self, code: str, user_id: str, session_id: str) -> None:
        data = self.store.get(self.DISCOUNT_CODES, code)
        if data is None:
            self.logger.warning(f"Discount code {code} not found when marking it used")
            return

        discount = DiscountCode.from_dict(data)
        if discount.used:
            self.logger.info(f"Discount code {code} was already marked used")
            return

        discount.used = True
        discount.used_at = time.time()
        discount.used_by = user_id
        discount.last_session_id = session_id
        self.store.put(self.DISCOUNT_CODES, code, discount.to_dict())
        self.logger.info(f"Discount code {code} marked used by {user_id}")
