"""
Game View Model - Applies purchase outcomes to the save-game and drives the UI.
"""

from typing import Protocol

from structlog import get_logger

from iap_bridge.config import settings
from iap_bridge.models.game import GameDataStore
from iap_bridge.models.storefront import Product, Transaction
from iap_bridge.services.purchase_service import PurchaseService

logger = get_logger(__name__)

EXTRA_LIVES_KEYWORD = "extra_lives"
SUPER_POWERS_KEYWORD = "superpowers"
UNLOCK_MAPS_KEYWORD = "unlock_maps"

# Shop rows, in display order
ITEM_KEYWORDS: tuple[str, ...] = (EXTRA_LIVES_KEYWORD, SUPER_POWERS_KEYWORD, UNLOCK_MAPS_KEYWORD)


class GameViewDelegate(Protocol):
    """Presentation collaborator. Outbound notifications only."""

    def will_start_long_process(self) -> None: ...

    def did_finish_long_process(self) -> None: ...

    def show_iap_related_error(self, error: Exception) -> None: ...

    def should_update_ui(self) -> None: ...

    def did_finish_restoring_purchases_with_zero_products(self) -> None: ...

    def did_finish_restoring_purchased_products(self) -> None: ...


class GameViewModel:
    """View model for the shop screen."""

    def __init__(
        self,
        purchases: PurchaseService,
        store: GameDataStore,
        delegate: GameViewDelegate | None = None,
    ) -> None:
        self.purchases = purchases
        self.store = store
        self.delegate = delegate
        self.products: list[Product] = []

    @property
    def available_extra_lives(self) -> int:
        return self.store.game_data.extra_lives

    @property
    def available_super_powers(self) -> int:
        return self.store.game_data.super_powers

    @property
    def did_unlock_all_maps(self) -> bool:
        return self.store.game_data.did_unlock_all_maps

    def _update_game_data_with_purchased_product(self, product_id: str) -> None:
        # The keyword in the product identifier decides what gets unlocked
        game_data = self.store.game_data
        if EXTRA_LIVES_KEYWORD in product_id:
            game_data.extra_lives = settings.extra_lives_per_purchase
        elif SUPER_POWERS_KEYWORD in product_id:
            game_data.super_powers = settings.super_powers_per_purchase
        else:
            game_data.did_unlock_all_maps = True

        self.store.update()
        logger.info("purchase_applied", product_id=product_id)
        if self.delegate:
            self.delegate.should_update_ui()

    def _restore_unlocked_maps(self) -> None:
        self.store.game_data.did_unlock_all_maps = True
        self.store.update()
        if self.delegate:
            self.delegate.should_update_ui()

    def apply_unfinished_transaction(self, transaction: Transaction) -> None:
        """Listener for purchases completed without a waiting caller."""
        logger.info(
            "applying_unfinished_transaction",
            transaction_id=transaction.transaction_id,
            product_id=transaction.product_id,
        )
        self._update_game_data_with_purchased_product(transaction.product_id)

    def get_product(self, containing: str) -> Product | None:
        """First fetched product whose identifier contains `containing`."""
        if not containing:
            return None
        return next((p for p in self.products if containing in p.product_id), None)

    def get_product_for_item(self, index: int) -> Product | None:
        keyword = ITEM_KEYWORDS[index] if 0 <= index < len(ITEM_KEYWORDS) else ""
        return self.get_product(containing=keyword)

    def did_consume_life(self) -> bool:
        if self.store.game_data.extra_lives == 0:
            return False
        self.store.game_data.extra_lives -= 1
        return self.store.update()

    def did_consume_super_power(self) -> bool:
        if self.store.game_data.super_powers == 0:
            return False
        self.store.game_data.super_powers -= 1
        return self.store.update()

    async def view_did_setup(self) -> None:
        if self.delegate:
            self.delegate.will_start_long_process()
        try:
            self.products = await self.purchases.fetch_products()
        except Exception as exc:
            logger.warning("products_unavailable", error=str(exc))
            if self.delegate:
                self.delegate.show_iap_related_error(exc)
            return
        if self.delegate:
            self.delegate.did_finish_long_process()

    async def purchase(self, product: Product) -> bool:
        """
        Buy `product` and apply it to the save-game.

        Returns False only when payments are disabled on this device;
        purchase errors are reported through the delegate.
        """
        if not self.purchases.can_make_payments():
            return False

        if self.delegate:
            self.delegate.will_start_long_process()
        try:
            await self.purchases.buy(product)
        except Exception as exc:
            logger.warning("purchase_failed", product_id=product.product_id, error=str(exc))
            if self.delegate:
                self.delegate.show_iap_related_error(exc)
            return True

        if self.delegate:
            self.delegate.did_finish_long_process()
        self._update_game_data_with_purchased_product(product.product_id)
        return True

    async def restore_purchases(self) -> None:
        if self.delegate:
            self.delegate.will_start_long_process()
        try:
            restored = await self.purchases.restore_purchases()
        except Exception as exc:
            logger.warning("restore_failed", error=str(exc))
            if self.delegate:
                self.delegate.show_iap_related_error(exc)
            return

        if restored:
            self._restore_unlocked_maps()
            if self.delegate:
                self.delegate.did_finish_restoring_purchased_products()
        elif self.delegate:
            self.delegate.did_finish_restoring_purchases_with_zero_products()
