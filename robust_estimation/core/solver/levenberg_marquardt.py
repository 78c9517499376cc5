"""robust_estimation.core.solver.levenberg_marquardt

Damped nonlinear least squares (Levenberg-Marquardt) and covariance helpers.

The solver is model agnostic. Callers provide:
  - ``residual_func(x)``: observed - predicted, shape (m,)
  - ``jacobian_func(x)``: d(predicted)/dx, shape (m, n)

and optional per-observation weights (1 / sigma^2). Each iteration solves the
damped normal equations

    (J^T P J + lambda * diag(J^T P J)) dx = J^T P r

and accepts the step only if the weighted cost v^T P v decreases.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from ..errors import SingularSystemError


DEFAULT_MAX_ITERATIONS = 100
DEFAULT_TOLERANCE = 1e-12
DEFAULT_INITIAL_DAMPING = 1e-3

_MAX_DAMPING = 1e12
_MIN_DAMPING = 1e-15
_MIN_DIAGONAL = 1e-12


ResidualFunc = Callable[[np.ndarray], np.ndarray]
JacobianFunc = Callable[[np.ndarray], np.ndarray]


@dataclass
class LevenbergMarquardtResult:
    """Result of a Levenberg-Marquardt fit."""
    x: np.ndarray
    residuals: np.ndarray       # observed - predicted at x
    jacobian: np.ndarray        # d(predicted)/dx at x
    weights: np.ndarray
    cost: float                 # v^T P v at x
    iterations: int
    converged: bool

    @property
    def degrees_of_freedom(self) -> int:
        m, n = self.jacobian.shape
        return m - n


def levenberg_marquardt(
    residual_func: ResidualFunc,
    jacobian_func: JacobianFunc,
    x0: np.ndarray,
    weights: Optional[np.ndarray] = None,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    tolerance: float = DEFAULT_TOLERANCE,
    initial_damping: float = DEFAULT_INITIAL_DAMPING,
) -> LevenbergMarquardtResult:
    """Minimize the weighted sum of squared residuals.

    Args:
        residual_func: Function returning observed - predicted for parameters x
        jacobian_func: Function returning d(predicted)/dx for parameters x
        x0: Initial parameter vector
        weights: Per-observation weights (1/sigma^2), unit weights if None
        max_iterations: Maximum number of accepted steps
        tolerance: Relative step size below which the fit is converged
        initial_damping: Initial Marquardt damping factor

    Returns:
        LevenbergMarquardtResult at the best parameters found

    Raises:
        SingularSystemError: if the system has fewer observations than
            unknowns, the Jacobian is rank deficient at the initial point, or
            residuals are not finite there.
    """
    x = np.array(x0, dtype=float)
    r = np.asarray(residual_func(x), dtype=float)
    m = len(r)
    n = len(x)

    if m < n:
        raise SingularSystemError(f"Underdetermined system: {m} observations for {n} unknowns")

    p = np.ones(m) if weights is None else np.asarray(weights, dtype=float)
    if not np.all(np.isfinite(r)):
        raise SingularSystemError("Residuals are not finite at the initial point")

    J = np.asarray(jacobian_func(x), dtype=float)
    if not np.all(np.isfinite(J)) or np.linalg.matrix_rank(J) < n:
        raise SingularSystemError("Jacobian is rank deficient")

    cost = float((p * r * r).sum())
    damping = initial_damping
    converged = False
    it = 0

    for it in range(1, max_iterations + 1):
        Jw = J * p[:, None]
        N = J.T @ Jw
        u = Jw.T @ r
        diag = np.maximum(np.diag(N), _MIN_DIAGONAL)

        accepted = False
        while damping <= _MAX_DAMPING:
            try:
                dx = np.linalg.solve(N + damping * np.diag(diag), u)
            except np.linalg.LinAlgError:
                damping *= 10.0
                continue

            x_new = x + dx
            r_new = np.asarray(residual_func(x_new), dtype=float)
            if np.all(np.isfinite(r_new)):
                cost_new = float((p * r_new * r_new).sum())
                if cost_new <= cost:
                    accepted = True
                    break
            damping *= 10.0

        if not accepted:
            # No descent direction left: x is a (local) minimum
            converged = True
            break

        x, r, cost = x_new, r_new, cost_new
        J = np.asarray(jacobian_func(x), dtype=float)
        damping = max(damping / 10.0, _MIN_DAMPING)

        step = float(np.linalg.norm(dx))
        if step <= tolerance * (float(np.linalg.norm(x)) + tolerance) or cost == 0.0:
            converged = True
            break

    if not np.all(np.isfinite(J)):
        raise SingularSystemError("Jacobian is not finite at the solution")

    return LevenbergMarquardtResult(
        x=x,
        residuals=r,
        jacobian=J,
        weights=p,
        cost=cost,
        iterations=it,
        converged=converged,
    )


def numerical_jacobian(
    predict_func: Callable[[np.ndarray], np.ndarray],
    x: np.ndarray,
    relative_step: float = 1e-6,
) -> np.ndarray:
    """Central finite-difference Jacobian of ``predict_func`` at ``x``.

    The step for parameter j is ``relative_step * max(1, |x_j|)``.
    """
    x = np.asarray(x, dtype=float)
    f0 = np.asarray(predict_func(x), dtype=float)
    J = np.zeros((len(f0), len(x)), dtype=float)
    for j in range(len(x)):
        h = relative_step * max(1.0, abs(float(x[j])))
        xp = x.copy()
        xm = x.copy()
        xp[j] += h
        xm[j] -= h
        J[:, j] = (np.asarray(predict_func(xp)) - np.asarray(predict_func(xm))) / (2.0 * h)
    return J


def covariance_from_fit(fit: LevenbergMarquardtResult) -> Optional[np.ndarray]:
    """Parameter covariance sigma0^2 * (J^T P J)^-1 for a finished fit.

    sigma0^2 is the a posteriori variance of unit weight v^T P v / dof, or 1.0
    when there is no redundancy.

    Returns:
        Covariance matrix, or None if the normal matrix is singular
    """
    J = fit.jacobian
    n = J.shape[1]
    N = (J.T * fit.weights) @ J
    if not np.all(np.isfinite(N)) or np.linalg.matrix_rank(N) < n:
        return None

    try:
        # Solve for inverse (more stable than np.linalg.inv)
        Qxx = np.linalg.solve(N, np.eye(n))
    except np.linalg.LinAlgError:
        return None

    dof = fit.degrees_of_freedom
    sigma0_sq = fit.cost / dof if dof > 0 else 1.0
    cov = sigma0_sq * Qxx
    # Symmetrize round-off
    cov = 0.5 * (cov + cov.T)
    if not np.all(np.isfinite(cov)):
        return None
    return cov


def standard_deviations(covariance: np.ndarray) -> np.ndarray:
    """Square roots of the (clamped non-negative) covariance diagonal."""
    return np.array([math.sqrt(max(v, 0.0)) for v in np.diag(covariance)])
