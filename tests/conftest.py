"""Shared pytest fixtures and utilities for Nanis Books tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator, Optional

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from nanis_books import cli, constants, core_logic, data_manager  # noqa: E402
from nanis_books.data_manager import (  # noqa: E402
    CashWithdrawal,
    Dataset,
    InventoryItem,
    PurchaseLine,
    Sale,
    SaleLine,
    Settings,
)
from nanis_books.setup_store import create_dataset_file  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "BusinessName = {business_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Defaults]\n"
    "WeightCostPerLb = 7.00\n"
    "TaxRatePercent = 8.775\n"
)


def make_item(item_id: str, *, weight: Optional[str] = "1", stock: int = 0, name: Optional[str] = None) -> InventoryItem:
    """Build an inventory item with only the fields allocation cares about."""

    return InventoryItem(
        item_id=item_id,
        name=name or f"Item {item_id}",
        stock=stock,
        weight_lbs=Decimal(weight) if weight is not None else None,
        created_at="2024-01-01T00:00:00+00:00",
    )


def make_line(item_id: str, quantity: int, unit_cost: str, *, sub_items: int = 0, line_id: str = "") -> PurchaseLine:
    return PurchaseLine(
        line_id=line_id or f"L-{item_id}",
        item_id=item_id,
        quantity=quantity,
        unit_cost=Decimal(unit_cost),
        has_sub_items=sub_items > 0,
        sub_items_qty=sub_items,
    )


def make_sale(sale_id: str, amount: str, *, item_id: str = "A", quantity: int = 1) -> Sale:
    return Sale(
        sale_id=sale_id,
        created_at="2024-01-05T10:00:00+00:00",
        payment_method=constants.PaymentMethod.CASH,
        lines=(SaleLine(item_id=item_id, quantity=quantity, unit_price=Decimal(amount) / quantity),),
        total_amount=Decimal(amount),
    )


def make_withdrawal(withdrawal_id: str, amount: str, *, reason: str = "Business re-investment", **kwargs) -> CashWithdrawal:
    return CashWithdrawal(
        withdrawal_id=withdrawal_id,
        amount=Decimal(amount),
        reason=reason,
        withdrawn_at=kwargs.pop("withdrawn_at", "2024-01-06T10:00:00+00:00"),
        **kwargs,
    )


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    data_path: Path
    schema_version: str
    business_name: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def config_factory(tmp_path: Path) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/dataset bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        business_name: str = "Test Beauty",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        create_dataset: bool = True,
    ) -> ConfigBundle:
        bundle_dir = tmp_path / f"bundle_{uuid.uuid4().hex}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        data_path = bundle_dir / "books.json"
        if create_dataset:
            create_dataset_file(data_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_path.name if make_relative else str(data_path),
                business_name=business_name,
                schema_version=schema_version,
            )
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            data_path=data_path,
            schema_version=schema_version,
            business_name=business_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="nanis-books", description="Nanis Books CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]


# ---------------------------------------------------------------------------
# Core logic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for runtime context tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "books.json",
        business_name="Test Beauty",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
    )


@pytest.fixture
def zero_tax_settings() -> Settings:
    return Settings(weight_cost_per_lb=Decimal("7"), tax_rate_percent=Decimal("0"))


@pytest.fixture
def stocked_dataset(zero_tax_settings: Settings) -> Dataset:
    """Two items (1 lb and 3 lb) and one 100.00 sale, so 100.00 of cash is available."""

    return Dataset(
        items=(make_item("A", weight="1"), make_item("B", weight="3")),
        sales=(make_sale("S1", "100"),),
        settings=zero_tax_settings,
    )


@pytest.fixture
def context(settings: data_manager.ConfigSettings, stocked_dataset: Dataset) -> core_logic.RuntimeContext:
    """Assemble a runtime context from injected settings and an in-memory dataset."""

    return core_logic.RuntimeContext(settings=settings, dataset=stocked_dataset)


@pytest.fixture
def set_fixed_datetime(monkeypatch: pytest.MonkeyPatch) -> Callable[[datetime], datetime]:
    """Patch ``core_logic.datetime`` to return a predetermined moment."""

    def _apply(moment: datetime) -> datetime:
        class _FixedDateTime:
            @staticmethod
            def now(tz=None):
                assert tz is UTC
                return moment

        monkeypatch.setattr(core_logic, "datetime", _FixedDateTime)
        return moment

    return _apply
