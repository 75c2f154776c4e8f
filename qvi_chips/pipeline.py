"""
qvi_chips.pipeline

Chips category review: transactions + customer attributes, cleaned, joined
and summarised.

Main entrypoint:
    from qvi_chips import run_all, ProjectConfig
    run_all(ProjectConfig(data_dir="data", out_dir="out"))

This will:
    - load the transaction and customer CSVs
    - normalise headers to canonical snake_case names
    - clean transactions (dates, numerics, outliers, non-chip products)
    - derive brand_name, pack_size and month from the raw rows
    - left-join customer lifestage / premium segment
    - compute segment, brand, pack-size and monthly aggregates
    - write all tables to <out_dir> as CSVs and charts as PNGs
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Optional, Tuple

import pandas as pd

from . import aggregate, report
from .errors import ParseError, SchemaError
from .products import matches_keyword, normalize_product_name, parse_product
from .utils import get_logger, missing_columns, numericize, standardize_columns, trim_strings


logger = logging.getLogger(__name__)

MAX_PRODUCT_QUANTITY = 200
EXCLUDED_KEYWORDS: Tuple[str, ...] = ("salsa",)
DATE_FORMAT = "%m/%d/%y"

TARGET_LIFESTAGES = ("YOUNG SINGLES/COUPLES", "MIDAGE SINGLES/COUPLES")
TARGET_SEGMENT = {"lifestage": "YOUNG SINGLES/COUPLES", "premium_segment": "Mainstream"}

# Reference extract headers (after lowercasing) -> canonical names
TRANSACTION_RENAMES = {
    "lylty_card_nbr": "customer_id",
    "store_nbr": "store_id",
    "txn_id": "transaction_id",
    "prod_nbr": "product_id",
    "prod_name": "product_name",
    "prod_qty": "product_quantity",
    "tot_sales": "total_sales",
}
CUSTOMER_RENAMES = {
    "lylty_card_nbr": "customer_id",
    "premium_customer": "premium_segment",
}

TRANSACTION_COLUMNS = [
    "date",
    "store_id",
    "customer_id",
    "transaction_id",
    "product_id",
    "product_name",
    "product_quantity",
    "total_sales",
]
CUSTOMER_COLUMNS = ["customer_id", "lifestage", "premium_segment"]
ID_COLUMNS = ["store_id", "customer_id", "transaction_id", "product_id"]


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

@dataclass
class ProjectConfig:
    """
    Configuration for the pipeline.

    Attributes
    ----------
    data_dir : Path
        Directory containing the transaction and customer CSVs.
    out_dir : Path
        Directory where all derived CSVs, plots and the checkpoint are written.
    show_plots : bool
        Whether to display plots (useful in notebooks).
    save_plots : bool
        Whether to save plots as PNGs under out_dir.
    write_checkpoint : bool
        Whether to persist the joined, cleaned dataset as a flat CSV.
    max_quantity : int
        Rows with product_quantity at or above this are bulk outliers.
    excluded_keywords : tuple of str
        Product-name keywords marking non-chip products.
    drop_outlier_customers : bool
        Also drop every transaction of a customer with an outlier purchase.
    top_n : int
        Number of rows kept in the top-N brand / pack-size tables.
    """
    data_dir: Path = Path("data")
    out_dir: Path = Path("out")
    transactions_file: str = "QVI_transaction_data.csv"
    customers_file: str = "QVI_purchase_behaviour.csv"
    show_plots: bool = False
    save_plots: bool = True
    write_checkpoint: bool = True
    max_quantity: int = MAX_PRODUCT_QUANTITY
    excluded_keywords: Tuple[str, ...] = EXCLUDED_KEYWORDS
    drop_outlier_customers: bool = False
    top_n: int = 10

    def __post_init__(self) -> None:
        self.data_dir = Path(self.data_dir)
        self.out_dir = Path(self.out_dir)
        self.excluded_keywords = tuple(self.excluded_keywords)

    @property
    def transactions_path(self) -> Path:
        return self.data_dir / self.transactions_file

    @property
    def customers_path(self) -> Path:
        return self.data_dir / self.customers_file

    @property
    def checkpoint_path(self) -> Path:
        return self.out_dir / "qvi_chips_joined.csv"


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_transactions(config: ProjectConfig) -> pd.DataFrame:
    """
    Read the transaction CSV as text; typing happens in the cleaner.
    """
    raw = pd.read_csv(config.transactions_path, dtype=str, low_memory=False)
    logger.info("Loaded %d transaction rows from %s", len(raw), config.transactions_path)
    return standardize_columns(raw)


def load_customers(config: ProjectConfig) -> pd.DataFrame:
    raw = pd.read_csv(config.customers_path, dtype=str, low_memory=False)
    logger.info("Loaded %d customer rows from %s", len(raw), config.customers_path)
    return standardize_columns(raw)


def load_raw(config: ProjectConfig) -> Tuple[pd.DataFrame, pd.DataFrame]:
    return load_transactions(config), load_customers(config)


# ---------------------------------------------------------------------------
# Schema normalizer
# ---------------------------------------------------------------------------

def _rename_identifier(df: pd.DataFrame, renames: Dict[str, str], table: str) -> pd.DataFrame:
    df = standardize_columns(df)
    if "customer_id" not in df.columns and "lylty_card_nbr" not in df.columns:
        raise SchemaError(
            "no customer identifier column", table=table, missing=["customer_id"]
        )
    # Canonical names win over reference aliases when both are present
    renames = {k: v for k, v in renames.items() if k in df.columns and v not in df.columns}
    return df.rename(columns=renames)


def normalize_schema(
    transactions: pd.DataFrame,
    customers: pd.DataFrame,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Lowercase headers and map both tables onto the canonical column names,
    with the loyalty card number renamed to ``customer_id`` on both sides.

    Raises
    ------
    SchemaError
        If either table is missing its identifier or another required column.
    """
    tx = _rename_identifier(transactions, TRANSACTION_RENAMES, "transactions")
    cust = _rename_identifier(customers, CUSTOMER_RENAMES, "customers")

    missing = missing_columns(tx, TRANSACTION_COLUMNS)
    if missing:
        raise SchemaError("transaction table is incomplete", table="transactions", missing=missing)
    missing = missing_columns(cust, CUSTOMER_COLUMNS)
    if missing:
        raise SchemaError("customer table is incomplete", table="customers", missing=missing)

    return tx, cust


# ---------------------------------------------------------------------------
# Cleaner
# ---------------------------------------------------------------------------

def parse_date(text: str) -> date:
    """
    Parse a MM/DD/YY transaction date such as ``"1/1/19"``.

    Raises ParseError instead of guessing at other layouts.
    """
    if not isinstance(text, str):
        raise ParseError("date is not text", value=text)
    try:
        return datetime.strptime(text.strip(), DATE_FORMAT).date()
    except ValueError as exc:
        raise ParseError(f"not a {DATE_FORMAT} date", value=text) from exc


def parse_dates(values: pd.Series) -> pd.Series:
    """Vectorised parse_date; unparseable entries become NaT."""
    text = values.astype(object).where(values.notna(), "").astype(str).str.strip()
    return pd.to_datetime(text, format=DATE_FORMAT, errors="coerce")


@dataclass(frozen=True)
class CleaningReport:
    rows_in: int
    bad_date: int
    bad_numeric: int
    outlier: int
    excluded_category: int
    bad_product_name: int
    rows_out: int

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


def clean_transactions(
    transactions: pd.DataFrame,
    config: Optional[ProjectConfig] = None,
) -> Tuple[pd.DataFrame, CleaningReport]:
    """
    Apply the cleaning rules in order and derive brand_name, pack_size, month.

    Rows failing a rule are dropped and counted, never repaired.
    """
    config = config or ProjectConfig()
    df = transactions.copy()
    rows_in = len(df)

    # 1. dates
    df["date"] = parse_dates(df["date"])
    bad_date = df["date"].isna()
    df = df.loc[~bad_date].copy()

    # 2. numerics
    numericize(df, ID_COLUMNS + ["product_quantity", "total_sales"])
    sales = df["total_sales"]
    bad_numeric = sales.isna() | (sales < 0)
    for c in ID_COLUMNS + ["product_quantity"]:
        bad_numeric |= df[c].isna() | (df[c] < 0) | (df[c] % 1 != 0)
    df = df.loc[~bad_numeric].copy()
    for c in ID_COLUMNS + ["product_quantity"]:
        df[c] = df[c].astype("int64")

    # 3. bulk purchases
    outlier = df["product_quantity"] >= config.max_quantity
    if config.drop_outlier_customers:
        outlier = outlier | df["customer_id"].isin(df.loc[outlier, "customer_id"])
    df = df.loc[~outlier]

    # 4. non-chip products
    excluded = df["product_name"].map(lambda n: matches_keyword(n, config.excluded_keywords))
    df = df.loc[~excluded.astype(bool)]

    # 5-7. product name -> brand / pack size
    parsed = {}
    for name in df["product_name"].dropna().unique():
        try:
            parsed[name] = parse_product(name)
        except ParseError as exc:
            logger.debug("Dropping product name: %s", exc)
    bad_name = ~df["product_name"].isin(list(parsed))
    df = df.loc[~bad_name].copy()

    df["brand_name"] = df["product_name"].map(lambda n: parsed[n].brand).astype(object)
    df["pack_size"] = df["product_name"].map(lambda n: parsed[n].pack_size).astype("Int64")
    df["product_name"] = df["product_name"].map(normalize_product_name).astype(object)
    df["month"] = df["date"].dt.strftime("%Y-%m").astype(object)

    df = df.reset_index(drop=True)
    cleaning = CleaningReport(
        rows_in=rows_in,
        bad_date=int(bad_date.sum()),
        bad_numeric=int(bad_numeric.sum()),
        outlier=int(outlier.sum()),
        excluded_category=int(excluded.astype(bool).sum()),
        bad_product_name=int(bad_name.sum()),
        rows_out=len(df),
    )
    for rule, count in cleaning.as_dict().items():
        logger.info("Cleaning %s: %d", rule, count)
    return df, cleaning


def clean_customers(customers: pd.DataFrame) -> pd.DataFrame:
    """
    Trim the categorical attributes and type customer_id; rows without a
    whole-number identifier cannot be joined and are dropped.
    """
    df = trim_strings(customers, ["lifestage", "premium_segment"])
    numericize(df, ["customer_id"])
    bad_id = df["customer_id"].isna() | (df["customer_id"] % 1 != 0)
    if bad_id.any():
        logger.info("Dropped %d customer rows without a valid customer_id", int(bad_id.sum()))
    df = df.loc[~bad_id].copy()
    df["customer_id"] = df["customer_id"].astype("int64")
    return df.reset_index(drop=True)


# ---------------------------------------------------------------------------
# Joiner
# ---------------------------------------------------------------------------

def join_customers(transactions: pd.DataFrame, customers: pd.DataFrame) -> pd.DataFrame:
    """
    Left-join customer attributes onto every transaction row.

    Row count and order of ``transactions`` are preserved; transactions from
    unknown customers keep null lifestage / premium_segment.
    """
    cols = ["customer_id"] + [c for c in customers.columns if c not in transactions.columns]
    try:
        joined = transactions.merge(
            customers[cols], on="customer_id", how="left", validate="many_to_one"
        )
    except pd.errors.MergeError as exc:
        raise SchemaError("customer_id is not unique", table="customers") from exc

    unmatched = int(joined["lifestage"].isna().sum())
    logger.info("Joined %d rows (%d without customer attributes)", len(joined), unmatched)
    return joined


# ---------------------------------------------------------------------------
# Checkpoint
# ---------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class Checkpoint:
    """
    The cleaned, joined dataset handed from preparation to analysis.

    Persisting is optional; ``from_csv`` restores the same column types that
    ``build_checkpoint`` produces.
    """
    joined: pd.DataFrame
    customers: pd.DataFrame
    cleaning: Optional[CleaningReport] = None

    def to_csv(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        out = self.joined.copy()
        out["date"] = out["date"].dt.strftime("%Y-%m-%d")
        out.to_csv(path, index=False)
        logger.info("Wrote checkpoint (%d rows) to %s", len(out), path)
        return path

    @classmethod
    def from_csv(cls, path: Path, customers: Optional[pd.DataFrame] = None) -> "Checkpoint":
        dtypes = {c: "int64" for c in ID_COLUMNS + ["product_quantity"]}
        dtypes.update({"total_sales": "float64", "pack_size": "Int64",
                       "product_name": str, "brand_name": str, "month": str,
                       "lifestage": str, "premium_segment": str})
        joined = pd.read_csv(path, dtype=dtypes)
        joined["date"] = pd.to_datetime(joined["date"], format="%Y-%m-%d")
        for c in ("product_name", "brand_name", "month", "lifestage", "premium_segment"):
            if c in joined.columns:
                joined[c] = joined[c].astype(object)
        if customers is None:
            present = [c for c in CUSTOMER_COLUMNS if c in joined.columns]
            customers = (
                joined.loc[joined["lifestage"].notna(), present]
                .drop_duplicates("customer_id")
                .reset_index(drop=True)
            )
        return cls(joined=joined, customers=customers)


def build_checkpoint(config: ProjectConfig) -> Checkpoint:
    """Load, normalise, clean and join; the preparation half of run_all."""
    transactions, customers = normalize_schema(*load_raw(config))
    transactions, cleaning = clean_transactions(transactions, config)
    customers = clean_customers(customers)
    joined = join_customers(transactions, customers)
    return Checkpoint(joined=joined, customers=customers, cleaning=cleaning)


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

def analyse(checkpoint: Checkpoint, config: ProjectConfig) -> Dict[str, pd.DataFrame]:
    """
    Compute every report table from a checkpoint. Keys are the CSV names.
    """
    joined = checkpoint.joined
    tables: Dict[str, pd.DataFrame] = {}

    tables["dataset_profile"] = aggregate.dataset_profile(joined)
    tables["segment_sales"] = aggregate.add_share(
        aggregate.aggregate(joined, ["lifestage", "premium_segment"])
    )
    tables["segment_customers"] = aggregate.customer_counts(
        checkpoint.customers, ["lifestage", "premium_segment"]
    )
    brand_sales = aggregate.add_share(aggregate.aggregate(joined, ["brand_name"]))
    tables["brand_sales"] = brand_sales
    tables["top_brands"] = aggregate.top_n(brand_sales, config.top_n)
    pack_sales = aggregate.add_share(aggregate.aggregate(joined, ["pack_size"]))
    tables["pack_size_sales"] = pack_sales
    tables["top_pack_sizes"] = aggregate.top_n(pack_sales, config.top_n)
    tables["monthly_sales"] = aggregate.aggregate(
        joined, ["month"], sort_by="month", ascending=True
    )
    tables["daily_sales"] = aggregate.daily_sales(joined)

    try:
        ttest = aggregate.unit_price_ttest(
            joined, TARGET_LIFESTAGES, alternative="greater"
        )
        tables["unit_price_ttest"] = ttest.to_frame()
    except ValueError as exc:
        logger.warning("Skipping unit price t-test: %s", exc)

    for by in ("brand_name", "pack_size"):
        try:
            tables[f"{by}_affinity"] = aggregate.affinity(joined, TARGET_SEGMENT, by)
        except ValueError as exc:
            logger.warning("Skipping %s affinity: %s", by, exc)

    return tables


# ---------------------------------------------------------------------------
# Main entrypoint
# ---------------------------------------------------------------------------

def run_all(config: ProjectConfig) -> Dict[str, pd.DataFrame]:
    """
    Run the full pipeline with the given configuration and return the
    report tables.
    """
    log = get_logger("qvi_chips")
    config.out_dir.mkdir(parents=True, exist_ok=True)

    # 1) Prepare
    checkpoint = build_checkpoint(config)
    if config.write_checkpoint:
        checkpoint.to_csv(config.checkpoint_path)

    # 2) Analyse
    tables = analyse(checkpoint, config)

    # 3) Report
    for name, table in tables.items():
        report.write_table(table, name, config)
    for name in ("dataset_profile", "segment_sales", "top_brands", "top_pack_sizes",
                 "unit_price_ttest", "brand_name_affinity"):
        if name in tables:
            report.log_table(name, tables[name])

    report.plot_segment_sales(tables["segment_sales"], config)
    report.plot_bar(tables["top_brands"], "brand_name", "sales",
                    "Top Brands by Sales", "top_brands.png", config)
    report.plot_bar(
        tables["pack_size_sales"].sort_values("pack_size"), "pack_size", "total_quantity",
        "Units Sold by Pack Size (g)", "pack_size_units.png", config,
    )
    report.plot_monthly_sales(tables["monthly_sales"], config)
    report.plot_daily_sales(tables["daily_sales"], config)

    log.info("Pipeline completed. Outputs written to: %s", config.out_dir)
    return tables


if __name__ == "__main__":
    # Basic CLI entrypoint
    cfg = ProjectConfig()
    run_all(cfg)
