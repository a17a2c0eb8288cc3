"""Semicolon-delimited CSV helpers shared by the CSV-based sources."""

from __future__ import annotations

import io

import pandas as pd

from pipelines.errors import MalformedFieldError


def read_semicolon_csv(text: str, *, fill_missing: bool = True) -> pd.DataFrame:
    """Parse semicolon-delimited CSV text, keeping every cell as a raw string.

    Empty cells come back as ``""``. Cells missing because a row is shorter
    than the header come back as NaN unless ``fill_missing`` is set.
    """

    if not text.strip():
        return pd.DataFrame()
    try:
        frame = pd.read_csv(
            io.StringIO(text),
            sep=";",
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.ParserError as exc:
        raise MalformedFieldError("csv", str(exc)) from exc
    return frame.fillna("") if fill_missing else frame


__all__ = ["read_semicolon_csv"]
