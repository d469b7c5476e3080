"""Data access layer for Nanis Books.

This module owns every read and write of the dataset document. Business rules
live in :mod:`nanis_books.core_logic`; nothing here allocates costs or checks
cash availability.

The public API covers three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Document lifecycle: opening, migrating, and persisting the JSON dataset.
3. Record conversion: turning stored camelCase mappings into frozen
   dataclasses and back.
"""


from __future__ import annotations

import configparser
import json
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from . import log
from .constants import (
    DEFAULT_TAX_RATE_PERCENT,
    DEFAULT_WEIGHT_COST_PER_LB,
    EXPECTED_SCHEMA_VERSION,
    ITEM_ENTRY_MAX_MARKUP,
    ITEM_ENTRY_MIN_MARKUP,
    PURCHASE_MAX_MARKUP,
    PURCHASE_MIN_MARKUP,
    Category,
    PaymentMethod,
    PaymentSource,
    TransactionType,
)
from .pricing import MarkupFactors


CONFIG_FILE_NAME = "config.ini"
SCHEMA_VERSION_KEY = "schemaVersion"
# Stored precision for derived amounts; finer than the audit tolerance.
STORAGE_SCALE = Decimal("0.000001")
COLLECTION_KEYS: Tuple[str, ...] = (
    "items",
    "purchases",
    "sales",
    "transactions",
    "cashWithdrawals",
)


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    business_name: str
    schema_version: str
    item_entry_markup: MarkupFactors = MarkupFactors(ITEM_ENTRY_MIN_MARKUP, ITEM_ENTRY_MAX_MARKUP)
    purchase_markup: MarkupFactors = MarkupFactors(PURCHASE_MIN_MARKUP, PURCHASE_MAX_MARKUP)
    default_weight_cost_per_lb: Decimal = DEFAULT_WEIGHT_COST_PER_LB
    default_tax_rate_percent: Decimal = DEFAULT_TAX_RATE_PERCENT


@dataclass(frozen=True)
class Settings:
    """Process-wide rates read by the allocation engine."""

    weight_cost_per_lb: Decimal = DEFAULT_WEIGHT_COST_PER_LB
    tax_rate_percent: Decimal = DEFAULT_TAX_RATE_PERCENT


@dataclass(frozen=True)
class InventoryItem:
    """One catalog entry with its landed cost and suggested price band."""

    item_id: str
    name: str
    category: str = Category.OTHER.value
    stock: int = 0
    weight_lbs: Optional[Decimal] = None
    cost_pre_shipping: Optional[Decimal] = None
    cost_post_shipping: Optional[Decimal] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    min_profit: Optional[Decimal] = None
    max_profit: Optional[Decimal] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    created_at: str = ""
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class PurchaseLine:
    """One ordered line of a purchase; allocation fields stay ``None`` until allocated."""

    line_id: str
    item_id: str
    quantity: int
    unit_cost: Decimal
    has_sub_items: bool = False
    sub_items_qty: int = 0
    per_unit_tax: Optional[Decimal] = None
    per_unit_shipping_us: Optional[Decimal] = None
    per_unit_shipping_intl: Optional[Decimal] = None
    unit_cost_post_shipping: Optional[Decimal] = None


@dataclass(frozen=True)
class Purchase:
    """A supplier order with footer totals and its funding breakdown."""

    purchase_id: str
    created_at: str
    lines: Tuple[PurchaseLine, ...]
    subtotal: Decimal
    tax: Decimal
    shipping_us: Decimal
    shipping_intl: Decimal
    weight_lbs: Decimal
    total_units: int
    total_cost: Decimal
    cash_used: Decimal = Decimal("0")
    payment_source: PaymentSource = PaymentSource.EXTERNAL
    ordered_date: Optional[str] = None
    payment_date: Optional[str] = None


@dataclass(frozen=True)
class SaleLine:
    item_id: str
    quantity: int
    unit_price: Decimal
    line_id: str = ""


@dataclass(frozen=True)
class Sale:
    sale_id: str
    created_at: str
    payment_method: PaymentMethod
    lines: Tuple[SaleLine, ...]
    total_amount: Decimal
    buyer_name: Optional[str] = None
    channel: Optional[str] = None


@dataclass(frozen=True)
class CashWithdrawal:
    """Immutable record of business cash leaving the balance."""

    withdrawal_id: str
    amount: Decimal
    reason: str
    withdrawn_at: str
    linked_purchase_id: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class ExternalFunding:
    """Paid entirely from outside the business balance."""


@dataclass(frozen=True)
class CashFunding:
    """Paid entirely from business cash."""


@dataclass(frozen=True)
class MixedFunding:
    """Paid partly from business cash and partly from external funds."""

    cash_amount: Decimal
    external_amount: Decimal


Funding = Union[ExternalFunding, CashFunding, MixedFunding]


@dataclass(frozen=True)
class Transaction:
    """An expense, fee, income, or discount entry."""

    transaction_id: str
    type: TransactionType
    amount: Decimal
    description: str
    category: str
    created_at: str
    funding: Funding = ExternalFunding()
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class Dataset:
    """Immutable snapshot of every stored collection."""

    items: Tuple[InventoryItem, ...] = ()
    purchases: Tuple[Purchase, ...] = ()
    sales: Tuple[Sale, ...] = ()
    transactions: Tuple[Transaction, ...] = ()
    cash_withdrawals: Tuple[CashWithdrawal, ...] = ()
    settings: Settings = field(default_factory=Settings)


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file.

    An explicit path wins without verification. Otherwise the search walks up
    from the current working directory and returns the first
    ``CONFIG_FILE_NAME`` that exists.

    Raises:
        FileNotFoundError: If no parent directory holds ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` into a ``ConfigParser``.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def _decimal_option(parser: configparser.ConfigParser, section: str, option: str, default: Decimal) -> Decimal:
    raw = parser.get(section, option, fallback=None)
    if raw is None or not raw.strip():
        return default
    return Decimal(raw.strip())


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into :class:`ConfigSettings`.

    The ``[System]`` section is mandatory. ``[Pricing]`` and ``[Defaults]`` are
    optional and fall back to the package constants. Relative ``DataFile``
    entries are anchored at ``base_path`` (or the working directory).

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to resolve a relative
            ``DataFile``.

    Returns:
        ConfigSettings: Immutable settings with an absolute data file path.

    Raises:
        KeyError: If a required ``[System]`` entry is missing.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        business_name = parser.get("System", "BusinessName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    item_entry = MarkupFactors(
        _decimal_option(parser, "Pricing", "ItemEntryMinMarkup", ITEM_ENTRY_MIN_MARKUP),
        _decimal_option(parser, "Pricing", "ItemEntryMaxMarkup", ITEM_ENTRY_MAX_MARKUP),
    )
    purchase = MarkupFactors(
        _decimal_option(parser, "Pricing", "PurchaseMinMarkup", PURCHASE_MIN_MARKUP),
        _decimal_option(parser, "Pricing", "PurchaseMaxMarkup", PURCHASE_MAX_MARKUP),
    )

    return ConfigSettings(
        data_file=data_file_path,
        business_name=business_name,
        schema_version=schema_version,
        item_entry_markup=item_entry,
        purchase_markup=purchase,
        default_weight_cost_per_lb=_decimal_option(
            parser, "Defaults", "WeightCostPerLb", DEFAULT_WEIGHT_COST_PER_LB
        ),
        default_tax_rate_percent=_decimal_option(
            parser, "Defaults", "TaxRatePercent", DEFAULT_TAX_RATE_PERCENT
        ),
    )


def load_document(data_file: Path) -> Dict[str, Any]:
    """Read the raw JSON document, parsing every float as :class:`Decimal`.

    Raises:
        FileNotFoundError: If the dataset file does not exist.
        ValueError: If the file is not a JSON object.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Dataset not found: {data_file}")

    with data_file.open("r", encoding="utf-8") as handle:
        raw = json.load(handle, parse_float=Decimal)
    if not isinstance(raw, dict):
        raise ValueError(f"Dataset file is not a JSON object: {data_file}")
    return raw


def migrate_document(raw: Mapping[str, Any], *, default_settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Bring a stored document up to ``EXPECTED_SCHEMA_VERSION``.

    Documents written before versioning used the "revenue" vocabulary for
    business cash. The migration renames those fields, fills missing
    collections and settings, and stamps the current version. The input
    mapping is not modified.
    """

    document = dict(raw)
    if document.get(SCHEMA_VERSION_KEY) == EXPECTED_SCHEMA_VERSION:
        return document

    log.info(
        "Migrating dataset document from version %s to %s",
        document.get(SCHEMA_VERSION_KEY, "<unversioned>"),
        EXPECTED_SCHEMA_VERSION,
    )

    if "revenueWithdrawals" in document and "cashWithdrawals" not in document:
        document["cashWithdrawals"] = document.pop("revenueWithdrawals")
    else:
        document.pop("revenueWithdrawals", None)

    purchases = []
    for purchase in document.get("purchases") or []:
        purchase = dict(purchase)
        legacy = purchase.pop("revenueUsed", None)
        if legacy is not None and purchase.get("cashUsed") is None:
            purchase["cashUsed"] = legacy
        purchases.append(purchase)
    document["purchases"] = purchases

    transactions = []
    for transaction in document.get("transactions") or []:
        transaction = dict(transaction)
        legacy = transaction.pop("revenueAmount", None)
        if legacy is not None and transaction.get("cashAmount") is None:
            transaction["cashAmount"] = legacy
        transactions.append(transaction)
    document["transactions"] = transactions

    for key in COLLECTION_KEYS:
        if not document.get(key):
            document[key] = []

    if not document.get("settings"):
        document["settings"] = serialize_settings(default_settings or Settings())

    document[SCHEMA_VERSION_KEY] = EXPECTED_SCHEMA_VERSION
    return document


def open_dataset(data_file: Path, *, default_settings: Optional[Settings] = None) -> Dataset:
    """Load, migrate, and deserialize the dataset stored at ``data_file``."""

    raw = load_document(data_file)
    dataset = deserialize_dataset(migrate_document(raw, default_settings=default_settings))
    log.debug(
        "Opened dataset '%s' (%d items, %d purchases, %d sales)",
        data_file,
        len(dataset.items),
        len(dataset.purchases),
        len(dataset.sales),
    )
    return dataset


def save_dataset(dataset: Dataset, destination: Path) -> None:
    """Persist ``dataset`` as JSON at ``destination``.

    Parent directories are created on demand. The file is written to a sibling
    temporary path first and then moved into place.
    """

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    payload = serialize_dataset(dataset)
    temporary = dest.with_suffix(dest.suffix + ".tmp")
    with temporary.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, default=_encode_decimal)
    temporary.replace(dest)


def refresh_dataset(data_file: Path, *, default_settings: Optional[Settings] = None) -> Dataset:
    """Reload the dataset from disk, discarding any in-memory snapshot."""

    return open_dataset(data_file, default_settings=default_settings)


def _encode_decimal(value: Any) -> Any:
    """Write a Decimal as a JSON number rounded to ``STORAGE_SCALE``.

    Six decimal places survive the float round trip, so a stored value reads
    back as the same Decimal and saving a reloaded dataset reproduces the file.
    """

    if isinstance(value, Decimal):
        stored = value.quantize(STORAGE_SCALE, rounding=ROUND_HALF_UP)
        return int(stored) if stored == stored.to_integral_value() else float(stored)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _to_decimal(value: Any, default: Optional[Decimal] = Decimal("0")) -> Optional[Decimal]:
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _to_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    return int(Decimal(str(value)))


def _compact(mapping: Dict[str, Any]) -> Dict[str, Any]:
    """Drop ``None`` values so optional fields stay absent in the document."""

    return {key: value for key, value in mapping.items() if value is not None}


def serialize_settings(record: Settings) -> Dict[str, Any]:
    return {
        "weightCostPerLb": record.weight_cost_per_lb,
        "taxRatePercent": record.tax_rate_percent,
    }


def deserialize_settings(raw: Mapping[str, Any]) -> Settings:
    return Settings(
        weight_cost_per_lb=_to_decimal(raw.get("weightCostPerLb"), DEFAULT_WEIGHT_COST_PER_LB),
        tax_rate_percent=_to_decimal(raw.get("taxRatePercent"), DEFAULT_TAX_RATE_PERCENT),
    )


def serialize_item(record: InventoryItem) -> Dict[str, Any]:
    return _compact(
        {
            "id": record.item_id,
            "name": record.name,
            "category": record.category,
            "stock": record.stock,
            "weightLbs": record.weight_lbs,
            "costPreShipping": record.cost_pre_shipping,
            "costPostShipping": record.cost_post_shipping,
            "minPrice": record.min_price,
            "maxPrice": record.max_price,
            "minProfit": record.min_profit,
            "maxProfit": record.max_profit,
            "description": record.description,
            "notes": record.notes,
            "createdAt": record.created_at,
            "updatedAt": record.updated_at,
        }
    )


def deserialize_item(raw: Mapping[str, Any]) -> InventoryItem:
    return InventoryItem(
        item_id=str(raw["id"]),
        name=str(raw.get("name", "")),
        category=str(raw.get("category") or Category.OTHER.value),
        stock=_to_int(raw.get("stock")),
        weight_lbs=_to_decimal(raw.get("weightLbs"), None),
        cost_pre_shipping=_to_decimal(raw.get("costPreShipping"), None),
        cost_post_shipping=_to_decimal(raw.get("costPostShipping"), None),
        min_price=_to_decimal(raw.get("minPrice"), None),
        max_price=_to_decimal(raw.get("maxPrice"), None),
        min_profit=_to_decimal(raw.get("minProfit"), None),
        max_profit=_to_decimal(raw.get("maxProfit"), None),
        description=raw.get("description"),
        notes=raw.get("notes"),
        created_at=str(raw.get("createdAt", "")),
        updated_at=raw.get("updatedAt"),
    )


def serialize_purchase_line(record: PurchaseLine) -> Dict[str, Any]:
    return _compact(
        {
            "id": record.line_id,
            "itemId": record.item_id,
            "quantity": record.quantity,
            "unitCost": record.unit_cost,
            "hasSubItems": record.has_sub_items,
            "subItemsQty": record.sub_items_qty if record.has_sub_items else None,
            "perUnitTax": record.per_unit_tax,
            "perUnitShippingUS": record.per_unit_shipping_us,
            "perUnitShippingIntl": record.per_unit_shipping_intl,
            "unitCostPostShipping": record.unit_cost_post_shipping,
        }
    )


def deserialize_purchase_line(raw: Mapping[str, Any]) -> PurchaseLine:
    return PurchaseLine(
        line_id=str(raw.get("id", "")),
        item_id=str(raw.get("itemId") or ""),
        quantity=_to_int(raw.get("quantity")),
        unit_cost=_to_decimal(raw.get("unitCost")),
        has_sub_items=bool(raw.get("hasSubItems", False)),
        sub_items_qty=_to_int(raw.get("subItemsQty")),
        per_unit_tax=_to_decimal(raw.get("perUnitTax"), None),
        per_unit_shipping_us=_to_decimal(raw.get("perUnitShippingUS"), None),
        per_unit_shipping_intl=_to_decimal(raw.get("perUnitShippingIntl"), None),
        unit_cost_post_shipping=_to_decimal(raw.get("unitCostPostShipping"), None),
    )


def serialize_purchase(record: Purchase) -> Dict[str, Any]:
    return _compact(
        {
            "id": record.purchase_id,
            "createdAt": record.created_at,
            "orderedDate": record.ordered_date,
            "paymentDate": record.payment_date,
            "lines": [serialize_purchase_line(line) for line in record.lines],
            "subtotal": record.subtotal,
            "tax": record.tax,
            "shippingUS": record.shipping_us,
            "shippingIntl": record.shipping_intl,
            "weightLbs": record.weight_lbs,
            "totalUnits": record.total_units,
            "totalCost": record.total_cost,
            "cashUsed": record.cash_used,
            "paymentSource": record.payment_source.value,
        }
    )


def deserialize_purchase(raw: Mapping[str, Any]) -> Purchase:
    return Purchase(
        purchase_id=str(raw["id"]),
        created_at=str(raw.get("createdAt", "")),
        ordered_date=raw.get("orderedDate"),
        payment_date=raw.get("paymentDate"),
        lines=tuple(deserialize_purchase_line(line) for line in raw.get("lines") or []),
        subtotal=_to_decimal(raw.get("subtotal")),
        tax=_to_decimal(raw.get("tax")),
        shipping_us=_to_decimal(raw.get("shippingUS")),
        shipping_intl=_to_decimal(raw.get("shippingIntl")),
        weight_lbs=_to_decimal(raw.get("weightLbs")),
        total_units=_to_int(raw.get("totalUnits")),
        total_cost=_to_decimal(raw.get("totalCost")),
        cash_used=_to_decimal(raw.get("cashUsed")),
        payment_source=PaymentSource(raw.get("paymentSource") or PaymentSource.EXTERNAL.value),
    )


def serialize_sale(record: Sale) -> Dict[str, Any]:
    return _compact(
        {
            "id": record.sale_id,
            "createdAt": record.created_at,
            "buyerName": record.buyer_name,
            "paymentMethod": record.payment_method.value,
            "channel": record.channel,
            "lines": [
                _compact(
                    {
                        "id": line.line_id or None,
                        "itemId": line.item_id,
                        "quantity": line.quantity,
                        "unitPrice": line.unit_price,
                    }
                )
                for line in record.lines
            ],
            "totalAmount": record.total_amount,
        }
    )


def deserialize_sale(raw: Mapping[str, Any]) -> Sale:
    return Sale(
        sale_id=str(raw["id"]),
        created_at=str(raw.get("createdAt", "")),
        buyer_name=raw.get("buyerName"),
        payment_method=PaymentMethod(raw.get("paymentMethod") or PaymentMethod.CASH.value),
        channel=raw.get("channel"),
        lines=tuple(
            SaleLine(
                line_id=str(line.get("id", "")),
                item_id=str(line.get("itemId", "")),
                quantity=_to_int(line.get("quantity")),
                unit_price=_to_decimal(line.get("unitPrice")),
            )
            for line in raw.get("lines") or []
        ),
        total_amount=_to_decimal(raw.get("totalAmount")),
    )


def serialize_withdrawal(record: CashWithdrawal) -> Dict[str, Any]:
    return _compact(
        {
            "id": record.withdrawal_id,
            "amount": record.amount,
            "reason": record.reason,
            "withdrawnAt": record.withdrawn_at,
            "linkedPurchaseId": record.linked_purchase_id,
            "notes": record.notes,
        }
    )


def deserialize_withdrawal(raw: Mapping[str, Any]) -> CashWithdrawal:
    return CashWithdrawal(
        withdrawal_id=str(raw["id"]),
        amount=_to_decimal(raw.get("amount")),
        reason=str(raw.get("reason", "")),
        withdrawn_at=str(raw.get("withdrawnAt", "")),
        linked_purchase_id=raw.get("linkedPurchaseId"),
        notes=raw.get("notes"),
    )


def payment_source_of(funding: Funding) -> PaymentSource:
    """Map a funding variant onto its stored ``paymentSource`` value."""

    if isinstance(funding, MixedFunding):
        return PaymentSource.MIXED
    if isinstance(funding, CashFunding):
        return PaymentSource.REVENUE
    return PaymentSource.EXTERNAL


def funding_from_fields(
    payment_source: Optional[str],
    cash_amount: Any = None,
    external_amount: Any = None,
) -> Funding:
    """Build the funding variant from stored or user-supplied flat fields."""

    source = PaymentSource(payment_source or PaymentSource.EXTERNAL.value)
    if source is PaymentSource.MIXED:
        return MixedFunding(
            cash_amount=_to_decimal(cash_amount),
            external_amount=_to_decimal(external_amount),
        )
    if source is PaymentSource.REVENUE:
        return CashFunding()
    return ExternalFunding()


def serialize_transaction(record: Transaction) -> Dict[str, Any]:
    funding = record.funding
    mixed = funding if isinstance(funding, MixedFunding) else None
    return _compact(
        {
            "id": record.transaction_id,
            "type": record.type.value,
            "amount": record.amount,
            "description": record.description,
            "category": record.category,
            "notes": record.notes,
            "createdAt": record.created_at,
            "paymentMethod": record.payment_method.value if record.payment_method else None,
            "paymentSource": payment_source_of(funding).value,
            "cashAmount": mixed.cash_amount if mixed else None,
            "externalAmount": mixed.external_amount if mixed else None,
        }
    )


def deserialize_transaction(raw: Mapping[str, Any]) -> Transaction:
    payment_method = raw.get("paymentMethod")
    return Transaction(
        transaction_id=str(raw["id"]),
        type=TransactionType(raw["type"]),
        amount=_to_decimal(raw.get("amount")),
        description=str(raw.get("description", "")),
        category=str(raw.get("category", "")),
        notes=raw.get("notes"),
        created_at=str(raw.get("createdAt", "")),
        payment_method=PaymentMethod(payment_method) if payment_method else None,
        funding=funding_from_fields(
            raw.get("paymentSource"),
            raw.get("cashAmount"),
            raw.get("externalAmount"),
        ),
    )


def serialize_dataset(dataset: Dataset) -> Dict[str, Any]:
    return {
        SCHEMA_VERSION_KEY: EXPECTED_SCHEMA_VERSION,
        "items": [serialize_item(item) for item in dataset.items],
        "purchases": [serialize_purchase(purchase) for purchase in dataset.purchases],
        "sales": [serialize_sale(sale) for sale in dataset.sales],
        "transactions": [serialize_transaction(transaction) for transaction in dataset.transactions],
        "cashWithdrawals": [serialize_withdrawal(withdrawal) for withdrawal in dataset.cash_withdrawals],
        "settings": serialize_settings(dataset.settings),
    }


def deserialize_dataset(raw: Mapping[str, Any]) -> Dataset:
    return Dataset(
        items=tuple(deserialize_item(item) for item in raw.get("items") or []),
        purchases=tuple(deserialize_purchase(purchase) for purchase in raw.get("purchases") or []),
        sales=tuple(deserialize_sale(sale) for sale in raw.get("sales") or []),
        transactions=tuple(deserialize_transaction(transaction) for transaction in raw.get("transactions") or []),
        cash_withdrawals=tuple(deserialize_withdrawal(withdrawal) for withdrawal in raw.get("cashWithdrawals") or []),
        settings=deserialize_settings(raw.get("settings") or {}),
    )
