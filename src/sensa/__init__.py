"""
sensa - One-at-a-time sensitivity analysis for optimization models.

Perturb each parameter in turn, re-solve, compare outcomes to the baseline.
"""

from sensa.run import SolverRun, init

__version__ = "0.1.0"
__all__ = ["SolverRun", "__version__", "init"]
