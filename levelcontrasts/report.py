# File: levelcontrasts/report.py
# Location: levelcontrasts/levelcontrasts/report.py

"""
Report writers for contrast results.

Writes the contrast and baseline tables as TSV and renders an HTML summary
from the packaged Jinja2 template.
"""

import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from jinja2 import Environment, FileSystemLoader, select_autoescape

from .version import __version__

logger = logging.getLogger("levelcontrasts")


def write_table(df: pd.DataFrame, output_file: str) -> None:
    """
    Write a result table as TSV, or to stdout when output_file is '-' or 'stdout'.

    Parameters
    ----------
    df : pd.DataFrame
        Table to write.
    output_file : str
        Destination path.
    """
    if output_file in ("-", "stdout"):
        print(df.to_csv(sep="\t", index=False), end="")
        return

    path = Path(output_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, sep="\t", index=False)
    logger.info(f"Wrote {len(df)} row(s) to {path}")


def _format_value(value: Any) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return ""
    if isinstance(value, (bool, np.bool_)):
        return "yes" if value else "no"
    if isinstance(value, float):
        return f"{value:.4g}"
    return str(value)


def generate_html_report(
    contrasts: pd.DataFrame,
    output_file: str,
    summary: Dict[str, Any],
    baselines: Optional[pd.DataFrame] = None,
) -> None:
    """
    Render an HTML report of contrast (and optional baseline) tables.

    Parameters
    ----------
    contrasts : pd.DataFrame
        Output of ContrastResult.to_frame().
    output_file : str
        Path of the HTML file to write.
    summary : dict
        Run metadata shown in the header (column, family, levels, ...).
    baselines : pd.DataFrame, optional
        Output of baselines_to_frame().

    Raises
    ------
    FileNotFoundError
        If the packaged templates directory is missing.
    """
    templates_dir = Path(__file__).parent / "templates"
    if not templates_dir.exists():
        raise FileNotFoundError(f"Templates directory not found at: {templates_dir}")

    env = Environment(
        loader=FileSystemLoader(str(templates_dir)),
        autoescape=select_autoescape(["html"]),
    )
    env.filters["fmt"] = _format_value
    template = env.get_template("contrast_report.html")

    def _records(df: Optional[pd.DataFrame]) -> List[Dict[str, Any]]:
        if df is None or df.empty:
            return []
        return df.astype(object).where(df.notna(), None).to_dict(orient="records")

    html_content = template.render(
        summary=summary,
        contrast_columns=list(contrasts.columns),
        contrasts=_records(contrasts),
        baseline_columns=list(baselines.columns) if baselines is not None else [],
        baselines=_records(baselines),
        version=__version__,
    )

    output_path = Path(output_file)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as out_f:
        out_f.write(html_content)
    logger.info(f"HTML report written to {output_path}")
