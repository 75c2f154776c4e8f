"""
Tables and charts for the aggregate results. Nothing here computes business
figures; every function takes an already-aggregated table.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import pandas as pd
import matplotlib.pyplot as plt

from .utils import finish_fig

if TYPE_CHECKING:
    from .pipeline import ProjectConfig


logger = logging.getLogger(__name__)


def write_table(table: pd.DataFrame, name: str, config: ProjectConfig) -> Path:
    config.out_dir.mkdir(parents=True, exist_ok=True)
    path = config.out_dir / f"{name}.csv"
    table.to_csv(path, index=False)
    return path


def log_table(title: str, table: pd.DataFrame, max_rows: int = 20) -> None:
    logger.info("%s\n%s", title, table.head(max_rows).to_string(index=False))


def _finish(fig: plt.Figure, filename: str, config: ProjectConfig) -> Optional[Path]:
    return finish_fig(
        fig,
        filename,
        out_dir=config.out_dir,
        show=config.show_plots,
        save=config.save_plots,
    )


def plot_bar(
    table: pd.DataFrame,
    x: str,
    y: str,
    title: str,
    filename: str,
    config: ProjectConfig,
) -> Optional[Path]:
    fig, ax = plt.subplots(figsize=(8, 4))
    ax.bar(table[x].astype(str), table[y])
    ax.set_xlabel(x.replace("_", " ").title())
    ax.set_ylabel(y.replace("_", " ").title())
    ax.set_title(title)
    plt.setp(ax.get_xticklabels(), rotation=45, ha="right")
    return _finish(fig, filename, config)


def plot_segment_sales(segment_sales: pd.DataFrame, config: ProjectConfig) -> Optional[Path]:
    """Grouped bars: sales per lifestage, one bar per premium segment."""
    if segment_sales.empty:
        logger.info("No segment sales to plot")
        return None
    pivot = segment_sales.pivot_table(
        index="lifestage", columns="premium_segment", values="sales", aggfunc="sum"
    ).sort_index()
    fig, ax = plt.subplots(figsize=(10, 5))
    pivot.plot(kind="bar", ax=ax)
    ax.set_xlabel("Lifestage")
    ax.set_ylabel("Sales")
    ax.set_title("Sales by Lifestage and Premium Segment")
    ax.legend(title="Premium segment", loc="upper left", bbox_to_anchor=(1, 1), fontsize="small")
    plt.setp(ax.get_xticklabels(), rotation=45, ha="right")
    return _finish(fig, "segment_sales.png", config)


def plot_monthly_sales(monthly: pd.DataFrame, config: ProjectConfig) -> Optional[Path]:
    fig, ax = plt.subplots(figsize=(10, 4))
    ax.bar(monthly["month"].astype(str), monthly["sales"])
    ax.set_xlabel("Month")
    ax.set_ylabel("Sales")
    ax.set_title("Chips Sales per Month")
    plt.setp(ax.get_xticklabels(), rotation=45, ha="right")
    return _finish(fig, "monthly_sales.png", config)


def plot_daily_sales(daily: pd.DataFrame, config: ProjectConfig) -> Optional[Path]:
    fig, ax = plt.subplots(figsize=(10, 4))
    ax.plot(daily["date"], daily["sales"])
    ax.set_xlabel("Date")
    ax.set_ylabel("Sales")
    ax.set_title("Daily Chips Sales")
    fig.autofmt_xdate()
    return _finish(fig, "daily_sales.png", config)
