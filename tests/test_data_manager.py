"""Unit tests documenting the expected behavior of the data access layer."""

from __future__ import annotations

import configparser
import json
from dataclasses import replace
from decimal import Decimal
from pathlib import Path

import pytest

from nanis_books import constants, data_manager
from nanis_books.constants import PaymentSource, TransactionType
from nanis_books.data_manager import (
    CashFunding,
    Dataset,
    ExternalFunding,
    MixedFunding,
    Purchase,
    Settings,
    Transaction,
)

from conftest import make_item, make_line, make_sale, make_withdrawal


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_find_config_file_respects_explicit_path(config_file: Path):
    """Supplying an explicit path should be treated as the winning answer."""

    assert data_manager.find_config_file(config_file) == config_file


def test_find_config_file_discovers_in_parent_directories(tmp_path, monkeypatch):
    """Auto-discovery walks up from the working directory."""

    config_file = tmp_path / "config.ini"
    config_file.write_text("[System]\nDataFile=books.json")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert data_manager.find_config_file() == config_file


def test_find_config_file_raises_when_missing(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(FileNotFoundError):
        data_manager.find_config_file()


def test_read_config_loads_sections(config_file: Path):
    parser = data_manager.read_config(config_file)
    assert parser.get("System", "BusinessName") == "Test Beauty"
    assert parser.get("Defaults", "TaxRatePercent") == "8.775"


def test_read_config_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.read_config(tmp_path / "not_there.ini")


def test_parse_settings_resolves_relative_paths(config_factory):
    """Relative DataFile entries should be anchored to the config location."""

    bundle = config_factory(make_relative=True)
    parser = configparser.ConfigParser()
    parser.read(bundle.config_path)

    settings = data_manager.parse_settings(parser, base_path=bundle.config_path.parent)

    assert settings.data_file == bundle.data_path.resolve()
    assert settings.business_name == "Test Beauty"
    assert settings.default_tax_rate_percent == Decimal("8.775")


def test_parse_settings_requires_system_section(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string("[Other]\nvalue=1")
    with pytest.raises(KeyError):
        data_manager.parse_settings(parser, base_path=tmp_path)


def test_parse_settings_reads_pricing_overrides(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string(
        "[System]\nDataFile=books.json\nBusinessName=B\nSchemaVersion=1.0.0\n"
        "[Pricing]\nPurchaseMinMarkup=1.5\n"
    )

    settings = data_manager.parse_settings(parser, base_path=tmp_path)

    assert settings.purchase_markup.min_factor == Decimal("1.5")
    assert settings.purchase_markup.max_factor == constants.PURCHASE_MAX_MARKUP
    assert settings.item_entry_markup.min_factor == constants.ITEM_ENTRY_MIN_MARKUP
    assert settings.default_weight_cost_per_lb == constants.DEFAULT_WEIGHT_COST_PER_LB


# ---------------------------------------------------------------------------
# Document lifecycle
# ---------------------------------------------------------------------------


def test_load_document_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.load_document(tmp_path / "absent.json")


def test_load_document_rejects_non_object(tmp_path):
    target = tmp_path / "books.json"
    target.write_text("[1, 2, 3]")
    with pytest.raises(ValueError):
        data_manager.load_document(target)


def test_load_document_parses_floats_as_decimal(tmp_path):
    target = tmp_path / "books.json"
    target.write_text('{"settings": {"taxRatePercent": 8.775}}')
    raw = data_manager.load_document(target)
    assert raw["settings"]["taxRatePercent"] == Decimal("8.775")


def test_migrate_document_renames_legacy_revenue_fields():
    legacy = {
        "items": [],
        "purchases": [{"id": "P1", "revenueUsed": 12.5}],
        "transactions": [{"id": "X1", "type": "fee", "paymentSource": "mixed", "revenueAmount": 3}],
        "revenueWithdrawals": [{"id": "W1", "amount": 12.5}],
    }

    migrated = data_manager.migrate_document(legacy)

    assert migrated["schemaVersion"] == constants.EXPECTED_SCHEMA_VERSION
    assert migrated["cashWithdrawals"] == [{"id": "W1", "amount": 12.5}]
    assert "revenueWithdrawals" not in migrated
    assert migrated["purchases"][0]["cashUsed"] == 12.5
    assert "revenueUsed" not in migrated["purchases"][0]
    assert migrated["transactions"][0]["cashAmount"] == 3
    assert migrated["sales"] == []
    assert migrated["settings"] == data_manager.serialize_settings(Settings())
    assert "revenueWithdrawals" in legacy


def test_migrate_document_keeps_current_documents():
    current = {"schemaVersion": constants.EXPECTED_SCHEMA_VERSION, "items": [{"id": "A"}]}
    assert data_manager.migrate_document(current) == current


def test_migrate_document_uses_supplied_default_settings():
    defaults = Settings(weight_cost_per_lb=Decimal("9"), tax_rate_percent=Decimal("6"))
    migrated = data_manager.migrate_document({}, default_settings=defaults)
    assert data_manager.deserialize_settings(migrated["settings"]) == defaults


def test_open_dataset_reads_legacy_file(tmp_path):
    target = tmp_path / "books.json"
    target.write_text(
        json.dumps(
            {
                "items": [{"id": "A", "name": "Oil", "stock": 3, "weightLbs": 0.5}],
                "revenueWithdrawals": [
                    {"id": "W1", "amount": 10, "reason": "Business re-investment", "withdrawnAt": "2024-01-01"}
                ],
            }
        )
    )

    dataset = data_manager.open_dataset(target)

    assert dataset.items[0].weight_lbs == Decimal("0.5")
    assert dataset.cash_withdrawals[0].amount == Decimal("10")


def test_save_dataset_writes_versioned_json(tmp_path):
    purchase = Purchase(
        purchase_id="P1",
        created_at="2024-01-02T00:00:00+00:00",
        lines=(make_line("A", 2, "10", sub_items=1),),
        subtotal=Decimal("20"),
        tax=Decimal("1.76"),
        shipping_us=Decimal("5"),
        shipping_intl=Decimal("7"),
        weight_lbs=Decimal("1"),
        total_units=3,
        total_cost=Decimal("33.76"),
        cash_used=Decimal("10"),
        payment_source=PaymentSource.MIXED,
    )
    dataset = Dataset(
        items=(make_item("A", weight="0.5"),),
        purchases=(purchase,),
        sales=(make_sale("S1", "40"),),
        cash_withdrawals=(make_withdrawal("W1", "10", linked_purchase_id="P1"),),
    )
    target = tmp_path / "nested" / "books.json"

    data_manager.save_dataset(dataset, target)

    raw = json.loads(target.read_text())
    assert raw["schemaVersion"] == constants.EXPECTED_SCHEMA_VERSION
    assert raw["purchases"][0]["shippingUS"] == 5
    assert raw["purchases"][0]["tax"] == 1.76
    assert raw["purchases"][0]["paymentSource"] == "mixed"
    assert raw["purchases"][0]["lines"][0]["subItemsQty"] == 1
    assert raw["cashWithdrawals"][0]["linkedPurchaseId"] == "P1"
    assert not (tmp_path / "nested" / "books.json.tmp").exists()
    assert data_manager.open_dataset(target) == dataset


# ---------------------------------------------------------------------------
# Funding variants
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("source", "expected"),
    [
        (None, ExternalFunding()),
        ("external", ExternalFunding()),
        ("revenue", CashFunding()),
        ("mixed", MixedFunding(Decimal("6"), Decimal("4"))),
    ],
)
def test_funding_from_fields(source, expected):
    assert data_manager.funding_from_fields(source, "6", "4") == expected


def test_transaction_serialization_flattens_mixed_funding():
    transaction = Transaction(
        transaction_id="X1",
        type=TransactionType.FEE,
        amount=Decimal("10"),
        description="Card fee",
        category="Other",
        created_at="2024-01-01",
        funding=MixedFunding(Decimal("6"), Decimal("4")),
    )

    raw = data_manager.serialize_transaction(transaction)

    assert raw["paymentSource"] == "mixed"
    assert (raw["cashAmount"], raw["externalAmount"]) == (Decimal("6"), Decimal("4"))
    assert data_manager.deserialize_transaction(raw) == transaction


def test_external_transaction_omits_split_fields():
    transaction = Transaction(
        transaction_id="X2",
        type=TransactionType.INCOME,
        amount=Decimal("10"),
        description="Class",
        category="Other",
        created_at="2024-01-01",
    )
    raw = data_manager.serialize_transaction(transaction)
    assert raw["paymentSource"] == "external"
    assert "cashAmount" not in raw


def test_save_dataset_stores_repeating_decimals_stably(tmp_path):
    """A third written, reloaded and written again yields the same file."""

    item = make_item("A", weight="0.5")
    dataset = Dataset(items=(replace(item, cost_post_shipping=Decimal("1") / 3),))
    target = tmp_path / "books.json"

    data_manager.save_dataset(dataset, target)
    first_text = target.read_text()
    reloaded = data_manager.open_dataset(target)
    data_manager.save_dataset(reloaded, target)

    assert reloaded.items[0].cost_post_shipping == Decimal("0.333333")
    assert target.read_text() == first_text
    assert data_manager.open_dataset(target) == reloaded
