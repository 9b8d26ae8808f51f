"""
Main Application - Composition root and sandbox demo.

Builds the observer and purchase service once at process start and hands
them to the game layer.
"""

import argparse
import asyncio
from dataclasses import dataclass
from decimal import Decimal

from iap_bridge.config import settings
from iap_bridge.models.game import GameDataStore
from iap_bridge.models.storefront import Product
from iap_bridge.observability import get_logger, setup_logging, setup_tracing
from iap_bridge.services.game import GameViewModel
from iap_bridge.services.product_ids import ProductIdentifierSource
from iap_bridge.services.purchase_service import PurchaseService
from iap_bridge.services.sandbox import SandboxPaymentQueue, SandboxProductCatalog
from iap_bridge.services.storefront import PaymentQueue, ProductCatalog
from iap_bridge.services.transaction_observer import TransactionObserver

logger = get_logger(__name__)


@dataclass
class Application:
    """Process-wide services, created once."""

    observer: TransactionObserver
    purchases: PurchaseService
    view_model: GameViewModel


def create_application(
    queue: PaymentQueue,
    catalog: ProductCatalog,
    product_ids: ProductIdentifierSource | None = None,
    store: GameDataStore | None = None,
) -> Application:
    """Wire the storefront dependencies into the observer, facade and view model."""
    observer = TransactionObserver(queue, catalog)
    purchases = PurchaseService(
        observer,
        product_ids or ProductIdentifierSource(settings.product_ids_path),
    )
    view_model = GameViewModel(purchases, store or GameDataStore(settings.game_data_path))
    # Purchases nobody is waiting for still reach the save-game
    observer.unfinished_transaction_listener = view_model.apply_unfinished_transaction
    return Application(observer=observer, purchases=purchases, view_model=view_model)


SANDBOX_PRODUCTS: tuple[Product, ...] = (
    Product("com.fakegame.extra_lives", Decimal("0.99"), "USD", title="Extra Lives"),
    Product("com.fakegame.superpowers", Decimal("1.99"), "USD", title="Super Powers"),
    Product("com.fakegame.unlock_maps", Decimal("2.99"), "USD", title="Unlock All Maps"),
)


async def run_demo(buy_index: int | None, restore: bool) -> None:
    queue = SandboxPaymentQueue(auto_complete=True, deliver_on_thread=True)
    catalog = SandboxProductCatalog(SANDBOX_PRODUCTS, deliver_on_thread=True)
    app = create_application(queue, catalog)

    app.purchases.start_observing()
    try:
        await app.view_model.view_did_setup()
        for product in app.view_model.products:
            logger.info(
                "product_available",
                product_id=product.product_id,
                price=app.purchases.get_price_formatted(product),
            )

        if buy_index is not None:
            product = app.view_model.get_product_for_item(buy_index)
            if product is None:
                logger.error("no_product_for_item", index=buy_index)
            else:
                await app.view_model.purchase(product)

        if restore:
            await app.view_model.restore_purchases()

        game_data = app.view_model.store.game_data
        logger.info(
            "game_state",
            extra_lives=game_data.extra_lives,
            super_powers=game_data.super_powers,
            did_unlock_all_maps=game_data.did_unlock_all_maps,
        )
    finally:
        app.purchases.stop_observing()


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the purchase flow against the sandbox storefront")
    parser.add_argument("--buy", type=int, default=None, help="Shop item index to buy (0-2)")
    parser.add_argument("--restore", action="store_true", help="Restore purchases afterwards")
    args = parser.parse_args()

    setup_logging()
    setup_tracing()
    asyncio.run(run_demo(args.buy, args.restore))


if __name__ == "__main__":
    main()
