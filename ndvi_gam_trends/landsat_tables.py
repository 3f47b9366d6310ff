# ndvi_gam_trends/landsat_tables.py
"""
Tabular preprocessing of exported Landsat NDVI stacks.

Exports arrive flattened: one row per pixel with ``x``/``y`` coordinates and
one column per acquisition, named so that the last eight characters are the
acquisition date (``..._YYYYMMDD``). These helpers turn that into the long
per-pixel time series the GAM workflows consume.
"""

from typing import Iterable, Sequence
import numpy as np
import pandas as pd

# Collection 2 Level-2 scale factors
SR_SCALE = 0.0000275
SR_OFFSET = -0.2
ST_SCALE = 0.00341802
ST_OFFSET = 149.0


def apply_scale_offset(values, scale: float = SR_SCALE, offset: float = SR_OFFSET) -> np.ndarray:
    """Convert stored digital numbers to surface reflectance."""
    return np.asarray(values, dtype=np.float64) * scale + offset


def surface_temperature_kelvin(values) -> np.ndarray:
    return apply_scale_offset(values, scale=ST_SCALE, offset=ST_OFFSET)


def normalized_difference(nir, red) -> np.ndarray:
    """(nir - red) / (nir + red); NaN where the sum is zero or an input is missing."""
    nir = np.asarray(nir, dtype=np.float64)
    red = np.asarray(red, dtype=np.float64)
    denom = nir + red
    with np.errstate(divide="ignore", invalid="ignore"):
        ndvi = (nir - red) / denom
    return np.where(denom == 0, np.nan, ndvi)


def band_dates_from_names(names: Iterable[str]) -> pd.DatetimeIndex:
    """Parse the trailing YYYYMMDD of each band name."""
    names = [str(n) for n in names]
    stamps = [n[-8:] for n in names]
    dates = pd.to_datetime(stamps, format="%Y%m%d", errors="coerce")
    bad = [n for n, d in zip(names, dates) if pd.isna(d)]
    if bad:
        raise ValueError(f"Band names without a trailing YYYYMMDD date: {bad[:5]}")
    return pd.DatetimeIndex(dates)


def wide_to_long(
    wide: pd.DataFrame,
    coord_columns: Sequence[str] = ("x", "y"),
    value_name: str = "NDVI",
) -> pd.DataFrame:
    """
    Reshape a flattened band table into one row per pixel and acquisition.

    Pixels without a single non-missing value are dropped. Adds ``date``,
    ``yday``, ``year`` and an ``xy`` key ("x y") for per-pixel grouping.
    """
    coord_columns = list(coord_columns)
    band_columns = [c for c in wide.columns if c not in coord_columns]
    if not band_columns:
        raise ValueError("Table has no band columns besides the coordinates")
    dates = band_dates_from_names(band_columns)

    has_data = wide[band_columns].notna().sum(axis=1) > 0
    kept = wide.loc[has_data]

    long = kept.melt(id_vars=coord_columns, value_vars=band_columns,
                     var_name="band", value_name=value_name)
    long["date"] = pd.to_datetime(long["band"].map(dict(zip(band_columns, dates))))
    long = long.drop(columns="band")
    long["yday"] = long["date"].dt.dayofyear
    long["year"] = long["date"].dt.year
    long["xy"] = long[coord_columns].astype(str).agg(" ".join, axis=1)
    return long.reset_index(drop=True)


def filter_low_ndvi_pixels(
    long: pd.DataFrame,
    min_mean_ndvi: float = 0.1,
    value_name: str = "NDVI",
    pixel_column: str = "xy",
) -> pd.DataFrame:
    """Keep pixels whose mean NDVI over all acquisitions exceeds ``min_mean_ndvi``."""
    pixel_means = long.groupby(pixel_column)[value_name].mean()
    keep = pixel_means.index[pixel_means > min_mean_ndvi]
    return long[long[pixel_column].isin(keep)].reset_index(drop=True)
