"""Single logical cart over the guest cart and the server cart."""

import logging
import uuid
from decimal import Decimal
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from .client import SoleMateClient
from .errors import NotFound, RefreshFailed, SoleMateError, ValidationError
from .models import AuthEvent, Cart, CartLine, CartVariant, MergeResult
from .storage import LocalStorage

logger = logging.getLogger(__name__)

GUEST_CART_KEY = "guest-cart"


class CartReconciler:
    """
    Presents one cart regardless of session state.

    While anonymous, lines live in client-local storage under GUEST_CART_KEY.
    Once a session exists the server cart is authoritative: every server
    response replaces the local view, and nothing is applied before the
    server confirms it. On login/register the guest lines are merged into the
    server cart.
    """

    def __init__(self, client: SoleMateClient, storage: LocalStorage) -> None:
        self.client = client
        self.storage = storage
        self._items: list[CartLine] = []
        self._closed = False
        self.last_merge: Optional[MergeResult] = None
        self._unsubscribe = client.auth_manager.subscribe(self._on_auth_event)
        if not self.is_authenticated:
            self._items = self._read_guest_lines()

    @property
    def is_authenticated(self) -> bool:
        return self.client.auth_manager.is_authenticated()

    @property
    def items(self) -> list[CartLine]:
        return [line.model_copy(deep=True) for line in self._items]

    @property
    def cart(self) -> Cart:
        return Cart(items=self.items)

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self._items)

    @property
    def total_price(self) -> Decimal:
        return sum((line.subtotal for line in self._items), Decimal("0"))

    @property
    def unmerged_count(self) -> int:
        """Guest lines the last merge could not carry over."""
        if self.last_merge is None:
            return 0
        return len(self.last_merge.failed)

    # Guest storage

    def _read_guest_lines(self) -> list[CartLine]:
        raw = self.storage.get_item(GUEST_CART_KEY)
        if not raw:
            return []
        try:
            return [CartLine.model_validate(entry) for entry in raw]
        except (PydanticValidationError, TypeError) as e:
            logger.error(f"Failed to load guest cart: {e}")
            return []

    def _save_guest_lines(self, lines: list[CartLine]) -> None:
        try:
            self.storage.set_item(
                GUEST_CART_KEY, [line.model_dump(mode="json", by_alias=True) for line in lines]
            )
        except OSError as e:
            logger.error(f"Failed to save guest cart: {e}")

    def _set_guest_lines(self, lines: list[CartLine]) -> None:
        self._items = lines
        self._save_guest_lines(lines)

    def _find_guest_line(self, line_id: str) -> CartLine:
        for line in self._items:
            if line.id == line_id:
                return line
        raise NotFound(404, f"Cart line {line_id} not found")

    # Server view

    def _apply(self, cart: Cart) -> None:
        """Make a server response the current view."""
        if self._closed:
            logger.debug("Reconciler closed, discarding server cart")
            return
        self._items = list(cart.items)

    def load(self) -> None:
        """Reload the active cart: the server cart if authenticated, else the guest cart."""
        if self.is_authenticated:
            self._apply(self.client.get_cart())
        else:
            self._items = self._read_guest_lines()

    # Operations

    def add_item(self, variant_ref: str, quantity: int = 1) -> None:
        """
        Add a variant to the cart.

        Anonymous adds increment the existing line for the variant or append a
        placeholder line whose display data is resolved later.

        Raises:
            ValidationError: If quantity is below 1
        """
        if quantity < 1:
            raise ValidationError(f"Quantity must be at least 1, got {quantity}")

        if self.is_authenticated:
            self._apply(self.client.add_cart_item(variant_ref, quantity))
            return

        lines = self.items
        for line in lines:
            if line.product_variant_id == variant_ref:
                line.quantity += quantity
                break
        else:
            lines.append(
                CartLine(
                    id=f"guest-{uuid.uuid4().hex}",
                    product_variant_id=variant_ref,
                    variant=CartVariant(id=variant_ref),
                    quantity=quantity,
                )
            )
        self._set_guest_lines(lines)
        logger.info(f"Guest cart: added {variant_ref} x{quantity}")

    def update_quantity(self, line_id: str, quantity: int) -> None:
        """Set a line's quantity. A quantity of zero or less removes the line."""
        if quantity <= 0:
            self.remove_item(line_id)
            return

        if self.is_authenticated:
            self._apply(self.client.update_cart_item(line_id, quantity))
            return

        self._find_guest_line(line_id)
        lines = self.items
        for line in lines:
            if line.id == line_id:
                line.quantity = quantity
        self._set_guest_lines(lines)

    def remove_item(self, line_id: str) -> None:
        """Remove a line from the cart."""
        if self.is_authenticated:
            self._apply(self.client.remove_cart_item(line_id))
            return

        self._find_guest_line(line_id)
        self._set_guest_lines([line for line in self._items if line.id != line_id])

    def clear(self) -> None:
        """Empty the active cart."""
        if self.is_authenticated:
            self._apply(self.client.clear_cart())
            return

        self._items = []
        self.storage.remove_item(GUEST_CART_KEY)

    def merge_on_authentication(self) -> MergeResult:
        """
        Push every guest line into the server cart, then reload it.

        Quantities add up with whatever the server cart already holds. The
        merge is not transactional: a failing line does not undo lines already
        merged. Failed lines stay in guest storage so a later merge can pick
        them up; the guest cart is deleted once every line went through.

        Raises:
            RefreshFailed: If the session died mid-merge. Unmerged lines are kept.
        """
        result = MergeResult()
        self.last_merge = result
        guest_lines = self._read_guest_lines()

        if guest_lines:
            logger.info(f"Merging {len(guest_lines)} guest cart line(s) into server cart")

        for index, line in enumerate(guest_lines):
            try:
                self.client.add_cart_item(line.product_variant_id, line.quantity)
                result.merged.append(line)
            except RefreshFailed:
                remaining = result.failed + guest_lines[index:]
                result.failed = remaining
                self._save_guest_lines(remaining)
                if not self.is_authenticated:
                    self._items = remaining
                logger.error(f"Session lost during cart merge, kept {len(remaining)} guest line(s)")
                raise
            except SoleMateError as e:
                logger.warning(f"Could not merge {line.product_variant_id} x{line.quantity}: {e}")
                result.failed.append(line)

        if result.failed:
            self._save_guest_lines(result.failed)
            logger.warning(f"Cart merge incomplete: {len(result.failed)} line(s) kept in guest cart")
        else:
            self.storage.remove_item(GUEST_CART_KEY)

        if not self._closed:
            # guest lines are not part of the server view
            self._items = []
        self.load()
        return result

    def resolve_placeholders(self) -> int:
        """
        Fill in display data for guest lines added before it was known.

        Lines whose variant cannot be fetched keep their placeholder.

        Returns:
            Number of lines resolved
        """
        if self.is_authenticated:
            return 0

        lines = self.items
        resolved = 0
        for line in lines:
            if not line.is_placeholder:
                continue
            try:
                variant = self.client.get_variant(line.product_variant_id)
            except SoleMateError as e:
                logger.warning(f"Could not resolve variant {line.product_variant_id}: {e}")
                continue
            line.product = variant.product
            line.variant = variant.to_cart_variant()
            resolved += 1

        if resolved:
            self._set_guest_lines(lines)
        return resolved

    def _on_auth_event(self, event: AuthEvent) -> None:
        if self._closed:
            return

        if event in (AuthEvent.LOGIN, AuthEvent.REGISTER):
            try:
                self.merge_on_authentication()
            except SoleMateError as e:
                logger.error(f"Cart merge after {event.value} failed: {e}")
        elif event is AuthEvent.RESTORE:
            try:
                self.load()
            except SoleMateError as e:
                logger.error(f"Could not load server cart: {e}")
        elif event in (AuthEvent.LOGOUT, AuthEvent.EXPIRED):
            self._items = self._read_guest_lines()

    def close(self) -> None:
        """Detach from session changes; later server results are discarded."""
        self._closed = True
        self._unsubscribe()

    def find_line(self, variant_ref: str) -> Optional[CartLine]:
        """Return the line holding a variant, if any."""
        for line in self._items:
            if line.product_variant_id == variant_ref:
                return line.model_copy(deep=True)
        return None
