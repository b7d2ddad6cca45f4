"""
Fit configuration.

Replaces the loose option dictionary with an explicit, validated record.
"""

import numbers
from dataclasses import dataclass, fields, replace
from typing import Any, Callable, Mapping, Optional, Sequence


@dataclass(frozen=True)
class FitConfiguration:
    """
    Tunables for the guarded Newton fit.

    Attributes
    ----------
    trust_radius : float
        Largest step as a fraction of each parameter's magnitude
    iterations : int
        Maximum Newton steps per dataset
    threshold : float
        Relative change in sum of squared errors that counts as converged
    min_lambda : float
        |lambda| below this marks the fit bad
    max_lambda : float
        |lambda| above this marks the fit bad; 0 means unbounded
    run_each_iteration : callable, optional
        Called with an IterationInfo before each Newton step and once after
    run_each_fit : callable, optional
        Called with a FitProgress after each dataset; returning 0 stops
    """
    trust_radius: float = 0.1
    iterations: int = 50
    threshold: float = 0.001
    min_lambda: float = 1e-8
    max_lambda: float = 0.0
    run_each_iteration: Optional[Callable[..., Any]] = None
    run_each_fit: Optional[Callable[..., Any]] = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Check all values; raises ValueError or TypeError."""
        for name in ('trust_radius', 'threshold', 'min_lambda', 'max_lambda'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, numbers.Real):
                raise TypeError(f"{name} must be a real number, got {value!r}")

        if isinstance(self.iterations, bool) or not isinstance(self.iterations, numbers.Integral):
            raise TypeError(f"iterations must be an integer, got {self.iterations!r}")

        if not self.trust_radius > 0:
            raise ValueError(f"trust_radius must be positive, got {self.trust_radius}")
        if self.iterations < 0:
            raise ValueError(f"iterations must be non-negative, got {self.iterations}")
        if not self.threshold >= 0:
            raise ValueError(f"threshold must be non-negative, got {self.threshold}")
        if not self.min_lambda >= 0:
            raise ValueError(f"min_lambda must be non-negative, got {self.min_lambda}")
        if not self.max_lambda >= 0:
            raise ValueError(f"max_lambda must be non-negative (0 = unbounded), got {self.max_lambda}")

        for name in ('run_each_iteration', 'run_each_fit'):
            callback = getattr(self, name)
            if callback is not None and not callable(callback):
                raise TypeError(f"{name} must be callable, got {type(callback).__name__}")

    def lambda_in_bounds(self, lam: float) -> bool:
        """True if |lam| lies within [min_lambda, max_lambda] (max 0 = no upper bound)."""
        magnitude = abs(lam)
        if magnitude < self.min_lambda:
            return False
        if self.max_lambda > 0 and magnitude > self.max_lambda:
            return False
        return True

    @classmethod
    def option_names(cls) -> tuple:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]] = None,
                     base: Optional['FitConfiguration'] = None) -> 'FitConfiguration':
        """
        Build a configuration from a mapping of options.

        Unknown keys are ignored. Known keys override ``base`` (or the
        defaults).

        Examples
        --------
        >>> cfg = FitConfiguration.from_options({'iterations': 100, 'foo': 1})
        >>> cfg.iterations
        100
        """
        base = base if base is not None else cls()
        if not options:
            return base
        known = set(cls.option_names())
        overrides = {k: v for k, v in options.items() if k in known}
        return replace(base, **overrides)

    @classmethod
    def from_pairs(cls, pairs: Sequence[Any]) -> 'FitConfiguration':
        """
        Build a configuration from a flat key/value sequence.

        Examples
        --------
        >>> FitConfiguration.from_pairs(['threshold', 1e-6, 'iterations', 20]).threshold
        1e-06
        """
        pairs = list(pairs)
        if len(pairs) % 2 != 0:
            raise ValueError(
                f"Options must be given as key/value pairs, got {len(pairs)} items"
            )
        keys = pairs[0::2]
        for key in keys:
            if not isinstance(key, str):
                raise TypeError(f"Option names must be strings, got {key!r}")
        return cls.from_options(dict(zip(keys, pairs[1::2])))
