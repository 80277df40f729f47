"""Least-squares fitting of TPS against worker count.

Three models are fitted and the one with the highest R² is kept:

    linear:       TPS = a * workers + b
    logarithmic:  TPS = a * ln(workers) + b
    exponential:  TPS = a * e^(b * workers)   (fitted on ln(TPS), TPS > 0)

R² and RMSE are always measured on the original TPS scale.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence

from pgscale.analyst.analysis_models import BandPrediction, CurveFit
from pgscale.analyst.statistics import finite, linear_regression, r_squared
from pgscale.common.models import BandMetrics

MIN_BANDS_FOR_FIT = 3
_LOG_FLOOR = 0.001
_MAX_EXPONENT = 700.0


def _safe_exp(x: float) -> float:
    if x > _MAX_EXPONENT:
        return 0.0
    return math.exp(x)


def _fit_linear(xs: list[float], ys: list[float]):
    a, b = linear_regression(xs, ys)
    return {"a": a, "b": b}, (lambda x: a * x + b), f"TPS = {a:.2f} * workers + {b:.2f}"


def _fit_logarithmic(xs: list[float], ys: list[float]):
    def log_x(x: float) -> float:
        return math.log(x if x > 0 else _LOG_FLOOR)

    a, b = linear_regression([log_x(x) for x in xs], ys)
    return (
        {"a": a, "b": b},
        (lambda x: a * log_x(x) + b),
        f"TPS = {a:.2f} * ln(workers) + {b:.2f}",
    )


def _fit_exponential(xs: list[float], ys: list[float]):
    points = [(x, math.log(y)) for x, y in zip(xs, ys) if y > 0]
    if len(points) < 2:
        return None
    b, ln_a = linear_regression([p[0] for p in points], [p[1] for p in points])
    a = _safe_exp(ln_a)
    return (
        {"a": a, "b": b},
        (lambda x: a * _safe_exp(b * x)),
        f"TPS = {a:.2f} * e^({b:.4f} * workers)",
    )


_MODELS: list[tuple[str, Callable]] = [
    ("linear", _fit_linear),
    ("logarithmic", _fit_logarithmic),
    ("exponential", _fit_exponential),
]


def fit_curve(bands: Sequence[BandMetrics]) -> CurveFit | None:
    """Fit the candidate models and return the best one.

    Returns:
        CurveFit for the highest-R² model (earlier models win ties), or
        None when fewer than three bands are available
    """
    if len(bands) < MIN_BANDS_FOR_FIT:
        return None

    xs = [float(b.workers) for b in bands]
    ys = [b.total_tps for b in bands]

    best: CurveFit | None = None
    candidates: dict[str, float] = {}
    for name, fitter in _MODELS:
        fitted = fitter(xs, ys)
        if fitted is None:
            continue
        coefficients, model, formula = fitted
        predicted = [finite(model(x)) for x in xs]
        r2 = r_squared(ys, predicted)
        candidates[name] = r2
        if best is None or r2 > best.r_squared:
            rmse = math.sqrt(math.fsum((y - p) ** 2 for y, p in zip(ys, predicted)) / len(ys))
            best = CurveFit(
                model_type=name,
                coefficients={k: finite(v) for k, v in coefficients.items()},
                r_squared=r2,
                rmse=finite(rmse),
                formula=formula,
                predictions=[
                    BandPrediction(
                        band_id=band.band_id,
                        predicted=p,
                        actual=y,
                        residual=finite(y - p),
                    )
                    for band, p, y in zip(bands, predicted, ys)
                ],
            )

    if best is not None:
        best.candidates = candidates
    return best
