"""
Pytest Configuration and Centralized Fixtures.

Provides reusable storefront doubles and fixtures for testing:
- Sandbox payment queue and catalog (synchronous delivery)
- Observer and purchase service wired to them
- Products, product identifier files, save-game store
- Recording handler and presentation delegate mocks
"""

import json
import os
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Set environment variables BEFORE importing package modules
os.environ.setdefault("IAP_LOG_FORMAT", "console")
os.environ.setdefault("IAP_TRACING_ENABLED", "false")

from iap_bridge.models.game import GameDataStore
from iap_bridge.models.operations import OperationResult
from iap_bridge.models.storefront import Product
from iap_bridge.services.game import GameViewDelegate, GameViewModel
from iap_bridge.services.product_ids import ProductIdentifierSource
from iap_bridge.services.purchase_service import PurchaseService
from iap_bridge.services.sandbox import SandboxPaymentQueue, SandboxProductCatalog
from iap_bridge.services.transaction_observer import TransactionObserver

# ============================================================================
# Product Fixtures
# ============================================================================

EXTRA_LIVES_ID = "com.fakegame.extra_lives"
SUPER_POWERS_ID = "com.fakegame.superpowers"
UNLOCK_MAPS_ID = "com.fakegame.unlock_maps"


@pytest.fixture
def extra_lives_product() -> Product:
    return Product(EXTRA_LIVES_ID, Decimal("0.99"), "USD", title="Extra Lives")


@pytest.fixture
def super_powers_product() -> Product:
    return Product(SUPER_POWERS_ID, Decimal("1.99"), "USD", title="Super Powers")


@pytest.fixture
def unlock_maps_product() -> Product:
    return Product(UNLOCK_MAPS_ID, Decimal("2.99"), "USD", title="Unlock All Maps")


@pytest.fixture
def all_products(
    extra_lives_product: Product,
    super_powers_product: Product,
    unlock_maps_product: Product,
) -> list[Product]:
    return [extra_lives_product, super_powers_product, unlock_maps_product]


# ============================================================================
# Product Identifier Fixtures
# ============================================================================


@pytest.fixture
def product_ids_file(tmp_path: Path) -> Path:
    """JSON product identifier list matching all_products."""
    path = tmp_path / "IAP_ProductIDs.json"
    path.write_text(json.dumps([EXTRA_LIVES_ID, SUPER_POWERS_ID, UNLOCK_MAPS_ID]))
    return path


@pytest.fixture
def product_ids(product_ids_file: Path) -> ProductIdentifierSource:
    return ProductIdentifierSource(product_ids_file)


@pytest.fixture
def missing_product_ids(tmp_path: Path) -> ProductIdentifierSource:
    return ProductIdentifierSource(tmp_path / "missing.plist")


# ============================================================================
# Storefront Fixtures
# ============================================================================


@pytest.fixture
def queue() -> SandboxPaymentQueue:
    """Manually driven payment queue delivering on the calling thread."""
    return SandboxPaymentQueue()


@pytest.fixture
def catalog(all_products: list[Product]) -> SandboxProductCatalog:
    """Catalog that waits for an explicit respond()/fail()."""
    return SandboxProductCatalog(all_products, auto_respond=False)


@pytest.fixture
def observer(queue: SandboxPaymentQueue, catalog: SandboxProductCatalog) -> TransactionObserver:
    observer = TransactionObserver(queue, catalog)
    observer.start_observing()
    return observer


@pytest.fixture
def service(
    observer: TransactionObserver, product_ids: ProductIdentifierSource
) -> PurchaseService:
    return PurchaseService(observer, product_ids)


class RecordingHandler:
    """Handler double that records every result it receives."""

    def __init__(self) -> None:
        self.results: list[OperationResult] = []

    def __call__(self, result: OperationResult) -> None:
        self.results.append(result)

    @property
    def calls(self) -> int:
        return len(self.results)

    @property
    def last(self) -> OperationResult:
        return self.results[-1]


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()


# ============================================================================
# Game Fixtures
# ============================================================================


@pytest.fixture
def game_store(tmp_path: Path) -> GameDataStore:
    return GameDataStore(tmp_path / "game_data.json")


@pytest.fixture
def view_delegate() -> MagicMock:
    return MagicMock(spec=GameViewDelegate)


@pytest.fixture
def view_model(
    service: PurchaseService, game_store: GameDataStore, view_delegate: MagicMock
) -> GameViewModel:
    return GameViewModel(service, game_store, view_delegate)
