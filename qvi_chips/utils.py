from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import pandas as pd
import matplotlib.pyplot as plt


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Return a logger with a single stream handler attached at INFO."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        h = logging.StreamHandler()
        h.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(h)
        logger.setLevel(logging.INFO)
    return logger


# -----------------------------
# Column names
# -----------------------------
def standardize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """
    Return a copy with standardized snake_case column names:
    - strip, lower
    - non-word -> underscore
    - trim leading/trailing underscores
    """
    def _clean(c: str) -> str:
        c = str(c).strip().lower()
        c = re.sub(r"[^\w]+", "_", c)
        c = re.sub(r"(^_+|_+$)", "", c)
        return c
    out = df.copy()
    out.columns = [_clean(c) for c in out.columns]
    return out


def missing_columns(df: pd.DataFrame, required: Sequence[str]) -> List[str]:
    """Required column names absent from df, in the order given."""
    return [c for c in required if c not in df.columns]


# -----------------------------
# Value cleaning helpers
# -----------------------------
def trim_strings(df: pd.DataFrame, cols: Iterable[str]) -> pd.DataFrame:
    """
    Trim whitespace in the given text columns and coerce common empties to NaN.
    Converts '', 'nan', 'none', 'null' (any case) to NaN.
    """
    out = df.copy()
    empties = re.compile(r"^(?:nan|none|null)?$", flags=re.IGNORECASE)
    for c in cols:
        if c not in out.columns:
            continue
        s = out[c].astype(object).where(out[c].notna(), "")
        s = s.astype(str).str.strip()
        out[c] = s.mask(s.map(lambda x: bool(empties.match(x)))).astype(object)
    return out


def numericize(df: pd.DataFrame, cols: Iterable[str]) -> None:
    """Inplace: coerce listed columns to numeric with NaN on errors."""
    for c in cols:
        if c and c in df.columns:
            df[c] = pd.to_numeric(df[c], errors="coerce")


# -----------------------------
# Plot helper
# -----------------------------
def finish_fig(
    fig: plt.Figure,
    filename: Optional[str] = None,
    *,
    out_dir: Optional[str | Path] = None,
    show: bool = False,
    save: bool = True,
    dpi: int = 150,
) -> Optional[Path]:
    """
    Save &/or show a Matplotlib figure, then close it.
    Returns the written path when the figure was saved.
    """
    path = None
    if save and filename:
        path = Path(out_dir if out_dir is not None else ".") / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(path, bbox_inches="tight", dpi=dpi)

    if show:
        plt.show()

    plt.close(fig)
    return path
