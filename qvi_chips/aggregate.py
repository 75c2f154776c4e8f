"""
qvi_chips.aggregate

Grouped summaries of the joined transaction table.

Every table produced here has one row per observed key combination and a
fully deterministic row order: the requested metric first, then the key
columns ascending.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy import stats


logger = logging.getLogger(__name__)

METRIC_COLUMNS = [
    "sales",
    "unique_customers",
    "total_quantity",
    "quantity_per_customer",
    "avg_unit_price",
]

Keys = Union[str, Sequence[str]]


def _as_list(keys: Keys) -> List[str]:
    return [keys] if isinstance(keys, str) else list(keys)


def _check_columns(df: pd.DataFrame, cols: Sequence[str]) -> None:
    missing = [c for c in cols if c not in df.columns]
    if missing:
        raise KeyError(f"unknown column(s): {', '.join(missing)}")


def _key_columns(table: pd.DataFrame) -> List[str]:
    return [c for c in table.columns if c not in METRIC_COLUMNS and not c.endswith("_pct")]


def sort_table(
    table: pd.DataFrame,
    keys: Keys,
    by: str = "sales",
    ascending: bool = False,
) -> pd.DataFrame:
    """
    Sort by ``by`` then by the key columns ascending, so equal metrics always
    come out in the same order.
    """
    keys = _as_list(keys)
    _check_columns(table, [by] + keys)
    order = [by] + [k for k in keys if k != by]
    return (
        table.sort_values(order, ascending=[ascending] + [True] * (len(order) - 1), kind="mergesort")
        .reset_index(drop=True)
    )


# ---------------------------------------------------------------------------
# Core aggregate
# ---------------------------------------------------------------------------

def aggregate(
    joined: pd.DataFrame,
    keys: Keys,
    sort_by: str = "sales",
    ascending: bool = False,
) -> pd.DataFrame:
    """
    Sales, customers and units per group.

    Columns: the keys, then sales, unique_customers, total_quantity,
    quantity_per_customer, avg_unit_price. Rows whose key is null are left
    out, as are groups with no customers or no units (their ratios are
    undefined).
    """
    keys = _as_list(keys)
    _check_columns(joined, keys + ["total_sales", "customer_id", "product_quantity"])

    grouped = (
        joined.groupby(keys, dropna=True, observed=True, sort=True)
        .agg(
            sales=("total_sales", "sum"),
            unique_customers=("customer_id", "nunique"),
            total_quantity=("product_quantity", "sum"),
        )
        .reset_index()
    )

    defined = (grouped["unique_customers"] > 0) & (grouped["total_quantity"] > 0)
    if not defined.all():
        logger.info("Excluded %d %s group(s) with zero customers or units",
                    int((~defined).sum()), "/".join(keys))
    grouped = grouped.loc[defined].copy()

    grouped["quantity_per_customer"] = grouped["total_quantity"] / grouped["unique_customers"]
    grouped["avg_unit_price"] = grouped["sales"] / grouped["total_quantity"]

    return sort_table(grouped, keys, by=sort_by, ascending=ascending)


def add_share(
    table: pd.DataFrame,
    metric: str = "sales",
    column: Optional[str] = None,
) -> pd.DataFrame:
    """
    Add ``<metric>_pct``: each row's percentage of the metric's total.

    The total is taken over the table as given, so call this before any
    top-N truncation.
    """
    _check_columns(table, [metric])
    out = table.copy()
    total = out[metric].sum()
    column = column or f"{metric}_pct"
    out[column] = out[metric] / total * 100 if total else np.nan
    return out


def top_n(
    table: pd.DataFrame,
    n: int,
    metric: str = "sales",
    keys: Optional[Keys] = None,
) -> pd.DataFrame:
    """First ``n`` rows by ``metric`` descending, ties broken on the keys."""
    if n < 0:
        raise ValueError("n must be non-negative")
    keys = _as_list(keys) if keys is not None else _key_columns(table)
    return sort_table(table, keys, by=metric).head(n).reset_index(drop=True)


# ---------------------------------------------------------------------------
# Customer segments
# ---------------------------------------------------------------------------

def customer_counts(customers: pd.DataFrame, keys: Keys) -> pd.DataFrame:
    """Number of distinct customers per segment, with share of all customers."""
    keys = _as_list(keys)
    _check_columns(customers, keys + ["customer_id"])
    counts = (
        customers.dropna(subset=keys)
        .groupby(keys, observed=True)
        .agg(customers=("customer_id", "nunique"))
        .reset_index()
    )
    counts = add_share(counts, "customers")
    return sort_table(counts, keys, by="customers")


def unit_prices(joined: pd.DataFrame) -> pd.Series:
    """Price paid per unit on each row; NaN where no units were bought."""
    qty = joined["product_quantity"].where(joined["product_quantity"] > 0)
    return joined["total_sales"] / qty


@dataclass(frozen=True)
class TTestResult:
    target: str
    others: Tuple[str, ...]
    lifestages: Tuple[str, ...]
    n_target: int
    n_others: int
    target_mean: float
    others_mean: float
    t_statistic: float
    p_value: float
    alternative: str

    def to_frame(self) -> pd.DataFrame:
        row = asdict(self)
        row["others"] = " | ".join(self.others)
        row["lifestages"] = " | ".join(self.lifestages)
        return pd.DataFrame([row])


def unit_price_ttest(
    joined: pd.DataFrame,
    lifestages: Sequence[str],
    target: str = "Mainstream",
    others: Sequence[str] = ("Budget", "Premium"),
    alternative: str = "two-sided",
) -> TTestResult:
    """
    Welch's t-test on unit price: ``target`` premium segment against
    ``others`` within the given lifestages.

    With ``alternative="greater"`` this tests whether the target segment pays
    more per packet.
    """
    _check_columns(joined, ["lifestage", "premium_segment", "total_sales", "product_quantity"])
    in_stage = joined["lifestage"].isin(list(lifestages))
    price = unit_prices(joined)
    a = price[in_stage & (joined["premium_segment"] == target)].dropna()
    b = price[in_stage & joined["premium_segment"].isin(list(others))].dropna()
    if len(a) < 2 or len(b) < 2:
        raise ValueError(
            f"need at least two priced rows per side, got {len(a)} and {len(b)}"
        )

    res = stats.ttest_ind(a.to_numpy(), b.to_numpy(), equal_var=False, alternative=alternative)
    return TTestResult(
        target=target,
        others=tuple(others),
        lifestages=tuple(lifestages),
        n_target=len(a),
        n_others=len(b),
        target_mean=float(a.mean()),
        others_mean=float(b.mean()),
        t_statistic=float(res.statistic),
        p_value=float(res.pvalue),
        alternative=alternative,
    )


def affinity(joined: pd.DataFrame, target: Mapping[str, object], by: str) -> pd.DataFrame:
    """
    How much more (or less) a customer segment buys each ``by`` value than
    everyone else with known attributes, measured on units.

    Returns ``by``, target_share, other_share and affinity
    (target_share / other_share), highest affinity first. Values the rest of
    the population never buys have no defined affinity and are left out.
    """
    cols = list(target)
    _check_columns(joined, cols + [by, "product_quantity"])

    known = joined[cols].notna().all(axis=1)
    mask = known.copy()
    for col, value in target.items():
        mask &= joined[col] == value

    inside = joined.loc[mask].dropna(subset=[by])
    outside = joined.loc[known & ~mask].dropna(subset=[by])
    if inside["product_quantity"].sum() == 0 or outside["product_quantity"].sum() == 0:
        raise ValueError("target segment or remainder bought no units")

    target_share = (
        inside.groupby(by, observed=True)["product_quantity"].sum()
        / inside["product_quantity"].sum()
    )
    other_share = (
        outside.groupby(by, observed=True)["product_quantity"].sum()
        / outside["product_quantity"].sum()
    )
    out = pd.concat(
        [target_share.rename("target_share"), other_share.rename("other_share")], axis=1
    ).fillna(0.0)
    out = out.loc[out["other_share"] > 0].copy()
    out["affinity"] = out["target_share"] / out["other_share"]
    out = out.rename_axis(by).reset_index()
    return sort_table(out, [by], by="affinity")


# ---------------------------------------------------------------------------
# Dataset profile & dates
# ---------------------------------------------------------------------------

def dataset_profile(joined: pd.DataFrame) -> pd.DataFrame:
    """
    Compact metric/value summary of the joined dataset.
    """
    dates = joined["date"].dropna().dt.normalize()
    if dates.empty:
        first = last = pd.NaT
        missing_days = 0
    else:
        first, last = dates.min(), dates.max()
        missing_days = len(pd.date_range(first, last, freq="D")) - dates.nunique()

    profile_rows = [
        ("rows", int(len(joined))),
        ("transactions", int(joined["transaction_id"].nunique())),
        ("customers", int(joined["customer_id"].nunique())),
        ("stores", int(joined["store_id"].nunique())),
        ("products", int(joined["product_id"].nunique())),
        ("brands", int(joined["brand_name"].nunique())),
        ("total_sales", round(float(joined["total_sales"].sum()), 2)),
        ("total_quantity", int(joined["product_quantity"].sum())),
        ("rows_without_customer", int(joined["lifestage"].isna().sum())),
        ("first_date", first),
        ("last_date", last),
        ("months_covered", int(joined["month"].nunique())),
        ("days_without_sales", int(missing_days)),
    ]
    return pd.DataFrame(profile_rows, columns=["metric", "value"])


def daily_sales(joined: pd.DataFrame) -> pd.DataFrame:
    """Sales per calendar day over the whole span; days with no sales are 0."""
    if joined.empty:
        return pd.DataFrame({"date": pd.Series(dtype="datetime64[ns]"),
                             "sales": pd.Series(dtype="float64")})
    daily = joined.groupby(joined["date"].dt.normalize())["total_sales"].sum()
    span = pd.date_range(daily.index.min(), daily.index.max(), freq="D")
    return daily.reindex(span, fill_value=0.0).rename_axis("date").reset_index(name="sales")
