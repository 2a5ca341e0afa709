"""Colour legends for the AWC WAFS overlay images.

Each entry maps a legend swatch to the representative midpoint of its bin
(EDR is shown on the legend as x100). Several bins use two swatches that map
to the same value; those pairs are kept exactly as the legend draws them.
"""

from __future__ import annotations

from dataclasses import dataclass

RGB = tuple[int, int, int]

ALPHA_THRESHOLD = 10

NO_DATA_EDR = 0.05
NO_DATA_WIND_KT = 0.0


@dataclass(frozen=True)
class LegendEntry:
    rgb: RGB
    value: float
    label: str


TURBULENCE_LEGEND: tuple[LegendEntry, ...] = (
    LegendEntry((255, 255, 255), 0.05, "<10"),
    LegendEntry((204, 255, 0), 0.15, "10-20"),
    LegendEntry((255, 204, 0), 0.15, "10-20"),
    LegendEntry((255, 153, 0), 0.3, "20-40"),
    LegendEntry((255, 102, 0), 0.3, "20-40"),
    LegendEntry((255, 0, 0), 0.5, "40-60"),
    LegendEntry((204, 0, 0), 0.5, "40-60"),
    LegendEntry((153, 0, 0), 0.7, "60-80"),
    LegendEntry((102, 0, 0), 0.7, "60-80"),
    LegendEntry((77, 0, 0), 0.9, "80-100"),
)

WIND_LEGEND: tuple[LegendEntry, ...] = (
    LegendEntry((0, 255, 255), 60, "60"),
    LegendEntry((0, 242, 229), 70, "70"),
    LegendEntry((0, 229, 204), 80, "80"),
    LegendEntry((0, 216, 165), 90, "90"),
    LegendEntry((0, 204, 127), 100, "100"),
    LegendEntry((0, 191, 63), 110, "110"),
    LegendEntry((0, 178, 0), 120, "120"),
    LegendEntry((94, 191, 0), 130, "130"),
    LegendEntry((127, 204, 0), 140, "140"),
    LegendEntry((165, 216, 0), 150, "150"),
)


def rgb_distance_sq(a: RGB, b: RGB) -> int:
    dr = a[0] - b[0]
    dg = a[1] - b[1]
    db = a[2] - b[2]
    return dr * dr + dg * dg + db * db


def nearest_entry(rgb: RGB, legend: tuple[LegendEntry, ...]) -> LegendEntry:
    """Return the legend entry closest to ``rgb``; ties go to the earlier entry."""
    best = legend[0]
    best_d = rgb_distance_sq(rgb, best.rgb)
    for entry in legend[1:]:
        d = rgb_distance_sq(rgb, entry.rgb)
        if d < best_d:
            best_d = d
            best = entry
    return best


def classify_edr_pixel(rgba: tuple[int, int, int, int]) -> float:
    """Decode one RGBA pixel of the turbulence overlay to an EDR value."""
    if rgba[3] < ALPHA_THRESHOLD:
        return NO_DATA_EDR
    return nearest_entry(rgba[:3], TURBULENCE_LEGEND).value


def classify_wind_pixel(rgba: tuple[int, int, int, int]) -> float:
    """Decode one RGBA pixel of the wind overlay to a speed in knots."""
    if rgba[3] < ALPHA_THRESHOLD:
        return NO_DATA_WIND_KT
    return nearest_entry(rgba[:3], WIND_LEGEND).value
