import matplotlib

matplotlib.use("Agg")

import pandas as pd
import pytest

from qvi_chips.pipeline import ProjectConfig, normalize_schema


TRANSACTION_HEADER = [
    "DATE", "STORE_NBR", "LYLTY_CARD_NBR", "TXN_ID",
    "PROD_NBR", "PROD_NAME", "PROD_QTY", "TOT_SALES",
]

# Ten rows covering every cleaning rule; see the comment at the end of each.
TRANSACTION_ROWS = [
    ["1/1/19", "1", "1000", "1", "5", "Kettle Chips 175g", "2", "10.80"],  # kept
    ["1/2/19", "1", "1000", "2", "6", "Smith Crinkle Cut  Chips Barbecue 170g", "1", "2.90"],  # kept
    ["1/3/19", "2", "1002", "3", "7", "Old El Paso Salsa   Dip Tomato Mild 300g", "1", "5.10"],  # salsa
    ["8/19/18", "88", "226000", "4", "4", "Dorito Corn Chp     Supreme 380g", "200", "650.00"],  # outlier
    ["2/14/19", "2", "1003", "5", "8", "WW Original Stacked Chips 160g", "2", "3.80"],  # kept
    ["13/45/19", "3", "1004", "6", "9", "Kettle Chips 175g", "1", "5.40"],  # bad date
    ["2/15/19", "3", "1005", "7", "10", "Grain Waves Sour Cream&Chives 210G", "1", "3.60"],  # kept, no customer
    ["3/1/19", "3", "1004", "8", "11", "Pringles Sthrn FriedChicken 134g", "abc", "3.70"],  # bad quantity
    ["3/2/19", "4", "1002", "9", "12", "Kettle Chips 175g", "1", "5.40"],  # kept
    ["8/20/18", "88", "226000", "10", "4", "Doritos Corn Chip Southern Chicken 150g", "2", "7.80"],  # kept
]

CUSTOMER_HEADER = ["LYLTY_CARD_NBR", "LIFESTAGE", "PREMIUM_CUSTOMER"]
CUSTOMER_ROWS = [
    ["1000", "YOUNG SINGLES/COUPLES", "Mainstream"],
    ["1002", "YOUNG SINGLES/COUPLES", "Premium"],
    ["1003", "RETIREES", "Budget"],
    ["1004", "OLDER FAMILIES", "Budget"],
    ["226000", "OLDER FAMILIES", "Premium"],
]


@pytest.fixture
def raw_transactions():
    return pd.DataFrame(TRANSACTION_ROWS, columns=TRANSACTION_HEADER)


@pytest.fixture
def raw_customers():
    return pd.DataFrame(CUSTOMER_ROWS, columns=CUSTOMER_HEADER)


@pytest.fixture
def tables(raw_transactions, raw_customers):
    return normalize_schema(raw_transactions, raw_customers)


@pytest.fixture
def config(tmp_path):
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    cfg = ProjectConfig(data_dir=data_dir, out_dir=tmp_path / "out", show_plots=False)
    pd.DataFrame(TRANSACTION_ROWS, columns=TRANSACTION_HEADER).to_csv(
        cfg.transactions_path, index=False
    )
    pd.DataFrame(CUSTOMER_ROWS, columns=CUSTOMER_HEADER).to_csv(cfg.customers_path, index=False)
    return cfg


@pytest.fixture
def make_joined():
    """
    Factory building a joined-shaped frame from
    (customer_id, lifestage, premium_segment, brand_name, pack_size, quantity, sales) tuples.
    """
    def _make(rows):
        df = pd.DataFrame(
            rows,
            columns=["customer_id", "lifestage", "premium_segment", "brand_name",
                     "pack_size", "product_quantity", "total_sales"],
        )
        df["pack_size"] = df["pack_size"].astype("Int64")
        return df
    return _make
