"""Cart and wishlist use cases.

Cart lines are merged by product: adding a product that is already in the
cart only raises its quantity.  Cart totals are recomputed on every
mutation.

``CartWishlistTransfer.move_to_cart`` is the only operation here that
touches two aggregates.  It runs inside one database transaction with both
rows locked, so a concurrent reader either sees the product still in the
wishlist and absent from the cart, or the reverse, never a mix.
"""

from __future__ import annotations

from typing import Any, Optional, Tuple

import structlog
from django.db import transaction

from modules.inventory.exceptions import InsufficientStock, InvalidQuantity
from modules.products.exceptions import ProductNotFound
from modules.products.models import Product
from modules.products.repositories import IProductRepository, ProductDjangoRepository
from modules.shopping.exceptions import CartItemNotFound, NotInWishlist
from modules.shopping.models import Cart, CartItem, Wishlist

logger = structlog.get_logger(__name__)


def _get_product(repo: IProductRepository, product_id: Any) -> Product:
    product = repo.get_by_id(product_id)
    if product is None:
        raise ProductNotFound(f"Product {product_id} not found.")
    return product


class WishlistService:
    def __init__(self, product_repository: Optional[IProductRepository] = None) -> None:
        self._product_repo = product_repository or ProductDjangoRepository()

    def get(self, user: Any) -> Wishlist:
        wishlist, _ = Wishlist.objects.get_or_create(user=user)
        return wishlist

    def add(self, user: Any, product_id: Any) -> Tuple[Wishlist, bool]:
        """Add a product; returns ``(wishlist, added)``.

        ``added`` is ``False`` when the product was already present.
        """
        product = _get_product(self._product_repo, product_id)
        wishlist = self.get(user)
        if wishlist.contains(product.pk):
            logger.info("wishlist.already_present", product_id=str(product.pk))
            return wishlist, False
        wishlist.products.add(product)
        logger.info("wishlist.added", product_id=str(product.pk))
        return wishlist, True

    def remove(self, user: Any, product_id: Any) -> Wishlist:
        wishlist = self.get(user)
        wishlist.products.remove(*wishlist.products.filter(pk=product_id))
        logger.info("wishlist.removed", product_id=str(product_id))
        return wishlist

    def clear(self, user: Any) -> Wishlist:
        wishlist = self.get(user)
        wishlist.products.clear()
        logger.info("wishlist.cleared")
        return wishlist


def _check_stock(product: Product, quantity: int, log: Any) -> None:
    if quantity < 1:
        raise InvalidQuantity()
    if product.stock < quantity:
        log.warning("cart.insufficient_stock", available=product.stock)
        raise InsufficientStock(
            f"Insufficient stock for {product.name}: "
            f"requested {quantity}, available {product.stock}."
        )


def _merge_line(
    cart: Cart,
    product: Product,
    quantity: int,
    size: Optional[str],
    vase: Optional[str],
    personal_note: str,
) -> bool:
    """Add *quantity* of *product* to a locked *cart*; returns ``True`` on merge.

    A product already in the cart keeps its line and modifiers and only
    gains quantity.
    """
    existing = cart.items.filter(product=product).first()
    if existing:
        existing.quantity += quantity
        existing.save(update_fields=["quantity"])
    else:
        CartItem.objects.create(
            cart=cart,
            product=product,
            quantity=quantity,
            price=product.price,
            size_name=size or "",
            size_price=product.size_price(size),
            vase_name=vase or "",
            vase_price=product.vase_price(vase),
            personal_note=personal_note or "",
        )
    cart.recalculate()
    return bool(existing)


def _locked_cart(user: Any) -> Cart:
    Cart.objects.get_or_create(user=user)
    return Cart.objects.select_for_update().get(user=user)


class CartService:
    def __init__(self, product_repository: Optional[IProductRepository] = None) -> None:
        self._product_repo = product_repository or ProductDjangoRepository()

    def get(self, user: Any) -> Cart:
        cart, _ = Cart.objects.get_or_create(user=user)
        return cart

    @transaction.atomic
    def add_item(
        self,
        user: Any,
        product_id: Any,
        quantity: int = 1,
        size: Optional[str] = None,
        vase: Optional[str] = None,
        personal_note: str = "",
    ) -> Cart:
        """Add a product to the cart, merging with an existing line.

        Raises:
            InvalidQuantity, ProductNotFound, InsufficientStock, InvalidModifier.
        """
        log = logger.bind(product_id=str(product_id), quantity=quantity)
        product = _get_product(self._product_repo, product_id)
        _check_stock(product, quantity, log)

        cart = _locked_cart(user)
        merged = _merge_line(cart, product, quantity, size, vase, personal_note)
        log.info("cart.item_added", cart_id=str(cart.pk), merged=merged)
        return cart

    @transaction.atomic
    def update_item(self, user: Any, item_id: Any, quantity: int) -> Cart:
        """Set the quantity of one cart line.

        Raises:
            CartItemNotFound, InvalidQuantity, InsufficientStock.
        """
        log = logger.bind(item_id=str(item_id), quantity=quantity)
        cart = _locked_cart(user)
        item = cart.items.select_related("product").filter(pk=item_id).first()
        if item is None:
            raise CartItemNotFound()
        _check_stock(item.product, quantity, log)

        item.quantity = quantity
        item.save(update_fields=["quantity"])
        cart.recalculate()
        log.info("cart.item_updated", cart_id=str(cart.pk))
        return cart

    @transaction.atomic
    def remove_item(self, user: Any, item_id: Any) -> Cart:
        cart = _locked_cart(user)
        deleted, _ = cart.items.filter(pk=item_id).delete()
        if not deleted:
            raise CartItemNotFound()
        cart.recalculate()
        logger.info("cart.item_removed", cart_id=str(cart.pk), item_id=str(item_id))
        return cart

    @transaction.atomic
    def clear(self, user: Any) -> None:
        cart = Cart.objects.select_for_update().filter(user=user).first()
        if cart is None:
            return
        cart.items.all().delete()
        cart.recalculate()
        logger.info("cart.cleared", cart_id=str(cart.pk))


class CartWishlistTransfer:
    """Move one product from a user's wishlist into their cart, atomically."""

    def __init__(self, product_repository: Optional[IProductRepository] = None) -> None:
        self._product_repo = product_repository or ProductDjangoRepository()

    @transaction.atomic
    def move_to_cart(
        self,
        user: Any,
        product_id: Any,
        quantity: int = 1,
        size: Optional[str] = None,
        vase: Optional[str] = None,
        personal_note: str = "",
    ) -> Tuple[Wishlist, Cart]:
        """Merge the product into the cart and drop it from the wishlist.

        Preconditions, checked in this order before anything is written:
        the product exists, ``stock >= quantity``, the product is in the
        wishlist.  Any failure rolls back both aggregates.

        Raises:
            InvalidQuantity: ``quantity < 1``.
            ProductNotFound: the product does not exist.
            InsufficientStock: not enough units on hand.
            NotInWishlist: the product is not in the wishlist.
            InvalidModifier: the size or vase is not offered.
        """
        log = logger.bind(product_id=str(product_id), quantity=quantity)
        if quantity < 1:
            raise InvalidQuantity()

        product = _get_product(self._product_repo, product_id)
        _check_stock(product, quantity, log)

        Wishlist.objects.get_or_create(user=user)
        wishlist = Wishlist.objects.select_for_update().get(user=user)
        if not wishlist.contains(product.pk):
            log.warning("wishlist.move_not_in_wishlist")
            raise NotInWishlist()

        cart = _locked_cart(user)
        merged = _merge_line(cart, product, quantity, size, vase, personal_note)

        wishlist.products.remove(product)
        log.info("wishlist.moved_to_cart", cart_id=str(cart.pk), merged=merged)
        return wishlist, cart
