"""Cost model for upstream token usage.

Maps a model identifier and its token counts to a dollar cost using a
pricing table of per-million-token prices. Model identifiers are matched
against family substrings in priority order; an identifier no family
matches is priced as the table's default family so that cost reporting
never blocks a response.

Costs stay raw floats until they reach the API boundary, where
format_cost() renders them with three decimals.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Tuple, Union

import yaml

TOKENS_PER_UNIT = 1_000_000


@dataclass(frozen=True)
class ModelPricing:
    """Per-million-token prices for one model family."""

    input_price: float
    output_price: float
    cache_write_price: float
    cache_read_price: float


@dataclass(frozen=True)
class PricingFamily:
    """A model family: the substring that identifies it and its prices."""

    match: str
    pricing: ModelPricing


@dataclass(frozen=True)
class PricingTable:
    """Ordered model families plus the family used when nothing matches.

    Built once at startup and shared read-only by every request.
    """

    families: Tuple[PricingFamily, ...]
    default_family: str

    def __post_init__(self) -> None:
        if not any(f.match == self.default_family for f in self.families):
            raise ValueError(
                "Default pricing family '{}' is not defined".format(
                    self.default_family
                )
            )

    def resolve(self, model_id: str) -> ModelPricing:
        """Return the pricing for the first family whose substring matches."""
        for family in self.families:
            if family.match in model_id:
                return family.pricing
        return next(
            f.pricing for f in self.families if f.match == self.default_family
        )

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "PricingTable":
        """Build a table from a parsed pricing document.

        Expected shape::

            default_family: claude-3-5-sonnet
            families:
              - match: claude-3-5-sonnet
                input: 3.0
                output: 15.0
                cache_write: 3.75
                cache_read: 0.30
        """
        families_raw = raw.get("families")
        if not isinstance(families_raw, list) or not families_raw:
            raise ValueError("Pricing file must define a non-empty 'families' list")

        families = []
        for entry in families_raw:
            try:
                families.append(
                    PricingFamily(
                        match=str(entry["match"]),
                        pricing=ModelPricing(
                            input_price=float(entry["input"]),
                            output_price=float(entry["output"]),
                            cache_write_price=float(entry.get("cache_write", 0.0)),
                            cache_read_price=float(entry.get("cache_read", 0.0)),
                        ),
                    )
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise ValueError("Invalid pricing family {!r}: {}".format(entry, exc))

        default_family = raw.get("default_family", families[0].match)
        return cls(families=tuple(families), default_family=str(default_family))


_SONNET = ModelPricing(
    input_price=3.0, output_price=15.0, cache_write_price=3.75, cache_read_price=0.30
)

DEFAULT_PRICING = PricingTable(
    families=(
        PricingFamily("claude-3-7-sonnet", _SONNET),
        PricingFamily("claude-3-5-sonnet", _SONNET),
        PricingFamily(
            "claude-3-5-haiku",
            ModelPricing(
                input_price=0.80,
                output_price=4.0,
                cache_write_price=1.0,
                cache_read_price=0.08,
            ),
        ),
        PricingFamily(
            "claude-3-opus",
            ModelPricing(
                input_price=15.0,
                output_price=75.0,
                cache_write_price=18.75,
                cache_read_price=1.50,
            ),
        ),
    ),
    default_family="claude-3-5-sonnet",
)


def load_pricing(path: Union[str, Path]) -> PricingTable:
    """Load a pricing table from a YAML file.

    Args:
        path: Path to the YAML pricing file.

    Returns:
        The parsed PricingTable.

    Raises:
        FileNotFoundError: If the pricing file does not exist.
        ValueError: If the YAML does not describe a valid table.
    """
    pricing_path = Path(path)
    if not pricing_path.exists():
        raise FileNotFoundError("Pricing file not found: {}".format(path))

    with open(pricing_path, "r") as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError("Pricing file must contain a YAML mapping at the top level")

    return PricingTable.from_dict(raw)


def calculate_cost(
    model_id: str,
    input_tokens: int,
    output_tokens: int,
    cache_write_tokens: int,
    cache_read_tokens: int,
    pricing: PricingTable,
) -> float:
    """Return the dollar cost of one request's token usage.

    Negative token counts are a caller error and are not checked.
    """
    prices = pricing.resolve(model_id)
    return (
        (input_tokens / TOKENS_PER_UNIT) * prices.input_price
        + (output_tokens / TOKENS_PER_UNIT) * prices.output_price
        + (cache_write_tokens / TOKENS_PER_UNIT) * prices.cache_write_price
        + (cache_read_tokens / TOKENS_PER_UNIT) * prices.cache_read_price
    )


def format_cost(cost: float) -> str:
    """Render a cost as dollars with three decimals, e.g. ``$1.500``."""
    return "${:.3f}".format(cost)


@dataclass(frozen=True)
class UsageRecord:
    """Token usage for one request or usage event, with its computed cost."""

    input_tokens: int
    output_tokens: int
    cache_write_tokens: int
    cache_read_tokens: int
    total_cost: float

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


def price_usage(
    model_id: str,
    input_tokens: int,
    output_tokens: int,
    cache_write_tokens: int,
    cache_read_tokens: int,
    pricing: PricingTable,
) -> UsageRecord:
    """Build a UsageRecord, pricing it against the given table."""
    return UsageRecord(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cache_write_tokens=cache_write_tokens,
        cache_read_tokens=cache_read_tokens,
        total_cost=calculate_cost(
            model_id,
            input_tokens,
            output_tokens,
            cache_write_tokens,
            cache_read_tokens,
            pricing,
        ),
    )
