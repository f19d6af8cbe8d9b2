"""Module containing the minimizers for problems with linear equality constraints and
lower bounds.

The default minimizer is a primal-dual interior point method using Newton's method
with a fraction-to-boundary rule and an Armijo line search on the residual of the
perturbed first-order conditions

.. math::

    g(x) - A^T y - z = 0,\\quad A x - b = 0,\\quad (x - l) z = \\mu,

where the barrier parameter :math:`\\mu` is driven to zero.

Minimizers signal failures by raising a
:class:`~chemfield.utils.errors.ConvergenceError`.

"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import numpy as np
import scipy.linalg

import chemfield as cf
from chemfield.utils.errors import ConvergenceError, DimensionMismatchError

from .optimum_state import OptimumProblem, OptimumState

__all__ = ["Minimizer", "InteriorPointMinimizer", "independent_rows"]

logger = logging.getLogger(__name__)

module_sections = ["equilibrium"]


class Minimizer(Protocol):
    """Interface for minimizers consumed by the equilibrium solver."""

    def solve(
        self,
        problem: OptimumProblem,
        x0: np.ndarray,
        y0: Optional[np.ndarray] = None,
        z0: Optional[np.ndarray] = None,
    ) -> OptimumState:
        """Solve ``problem`` starting from ``x0`` (and optionally dual guesses).

        Must raise :class:`~chemfield.utils.errors.ConvergenceError` on failure.

        """
        ...


def independent_rows(A: np.ndarray, tol: float = 1e-12) -> np.ndarray:
    """Indices of a maximal set of linearly independent rows of ``A``, sorted.

    Uses a QR decomposition with column pivoting of ``A^T``.

    """
    if A.shape[0] == 0:
        return np.zeros(0, dtype=int)
    _, R, pivots = scipy.linalg.qr(A.T, mode="economic", pivoting=True)
    diag = np.abs(np.diag(R))
    if diag.size == 0:
        return np.zeros(0, dtype=int)
    rank = int(np.sum(diag > tol * max(diag[0], 1.0)))
    return np.sort(pivots[:rank])


class InteriorPointMinimizer:
    """Primal-dual interior point minimizer.

    Linearly dependent rows of the constraint matrix are removed before the iterations,
    and their multipliers are set to zero.

    Parameters:
        params: ``default=None``

            Dictionary of solver parameters overriding :attr:`solver_params`.

    """

    def __init__(self, params: Optional[dict] = None) -> None:
        self.solver_params: dict = {
            "tolerance": 1e-10,
            "max_iterations": 200,
            "sigma": 0.1,
            "tau": 0.995,
            "rho": 0.5,
            "kappa": 1e-4,
            "j_max": 30,
            "barrier": 1e-6,
            "initial_offset": 1e-10,
        }
        """Parameters of the interior point method.

        - ``'tolerance'``: Convergence tolerance for the max-norm of the residuals.
        - ``'max_iterations'``: Maximal number of Newton iterations.
        - ``'sigma'``: Reduction factor of the barrier parameter per iteration.
        - ``'tau'``: Fraction-to-boundary factor.
        - ``'rho'``: Step reduction factor in the Armijo line search.
        - ``'kappa'``: Slope of the Armijo line search.
        - ``'j_max'``: Maximal number of line search iterations.
        - ``'barrier'``: Initial barrier parameter.
        - ``'initial_offset'``: Minimal distance of the initial guess to the bounds,
          relative to the scale of the right-hand side.

        """
        if params is not None:
            self.solver_params.update(params)

    def _residual(
        self,
        g: np.ndarray,
        A: np.ndarray,
        x: np.ndarray,
        b: np.ndarray,
        s: np.ndarray,
        y: np.ndarray,
        z: np.ndarray,
        mu: float,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        return g - A.T @ y - z, A @ x - b, s * z - mu

    @cf.time_logger(sections=module_sections)
    def solve(
        self,
        problem: OptimumProblem,
        x0: np.ndarray,
        y0: Optional[np.ndarray] = None,
        z0: Optional[np.ndarray] = None,
    ) -> OptimumState:
        """Minimize the objective of ``problem``.

        Parameters:
            problem: The minimization problem.
            x0: Initial guess of the primal variables. Values closer to the bounds than
                the initial offset are shifted into the interior.
            y0: ``default=None``

                Initial guess of the equality multipliers. Zero by default.
            z0: ``default=None``

                Initial guess of the bound multipliers. Defaults to the central path.

        Raises:
            DimensionMismatchError: If ``x0`` does not fit the problem.
            ConvergenceError: If the method does not converge within the maximal number
                of iterations, or if non-finite values are encountered.

        Returns:
            The optimum state.

        """
        tol = float(self.solver_params["tolerance"])
        max_iter = int(self.solver_params["max_iterations"])
        sigma = float(self.solver_params["sigma"])
        tau = float(self.solver_params["tau"])
        rho = float(self.solver_params["rho"])
        kappa = float(self.solver_params["kappa"])
        j_max = int(self.solver_params["j_max"])

        n = problem.num_variables
        x0 = np.asarray(x0, dtype=float).reshape(-1)
        if x0.shape[0] != n:
            raise DimensionMismatchError(
                f"Initial guess of size {x0.shape[0]}, expected {n}."
            )

        rows = independent_rows(problem.A)
        A = problem.A[rows]
        b = problem.b[rows]
        l = problem.lower
        b_scale = max(1.0, float(np.max(np.abs(b), initial=0.0)))

        offset = float(self.solver_params["initial_offset"]) * b_scale
        x = np.maximum(x0, l + offset)
        s = x - l
        mu = float(self.solver_params["barrier"])
        y = np.zeros(A.shape[0]) if y0 is None else np.asarray(y0, dtype=float)[rows]
        if z0 is None:
            z = mu / s
        else:
            z = np.maximum(np.asarray(z0, dtype=float), mu / s)

        f, g, H = problem.objective(x)
        r1, r2, r3 = self._residual(g, A, x, b, s, y, z, mu)

        num_iter = 0
        converged = False
        for _ in range(max_iter + 1):
            err_opt = np.max(np.abs(r1), initial=0.0)
            err_feas = np.max(np.abs(r2), initial=0.0) / b_scale
            err_comp = np.max(np.abs(s * z), initial=0.0)
            if max(err_opt, err_feas, err_comp) <= tol:
                converged = True
                break
            if num_iter == max_iter:
                break
            num_iter += 1

            # barrier update
            mu = min(mu, sigma * float(np.mean(s * z)))
            r3 = s * z - mu

            m = A.shape[0]
            K = np.zeros((n + m, n + m))
            K[:n, :n] = H + np.diag(z / s)
            K[:n, n:] = -A.T
            K[n:, :n] = A
            rhs = np.concatenate([-(g - A.T @ y) + mu / s, -r2])
            try:
                delta = np.linalg.solve(K, rhs)
            except np.linalg.LinAlgError:
                delta = np.linalg.lstsq(K, rhs, rcond=None)[0]
            if not np.all(np.isfinite(delta)):
                raise ConvergenceError(
                    "Non-finite Newton update.", num_iter, _norm(r1, r2, r3)
                )
            dx = delta[:n]
            dy = delta[n:]
            dz = mu / s - z - (z / s) * dx

            alpha = min(1.0, _max_step(s, dx, tau), _max_step(z, dz, tau))

            # Armijo line search on the residual potential
            pot = _norm(r1, r2, r3) ** 2 / 2.0
            alpha_j = alpha
            for j in range(j_max + 1):
                alpha_j = alpha * rho**j
                x_j = x + alpha_j * dx
                s_j = x_j - l
                y_j = y + alpha_j * dy
                z_j = z + alpha_j * dz
                with np.errstate(divide="ignore", invalid="ignore"):
                    f_j, g_j, H_j = problem.objective(x_j)
                r1_j, r2_j, r3_j = self._residual(g_j, A, x_j, b, s_j, y_j, z_j, mu)
                pot_j = _norm(r1_j, r2_j, r3_j) ** 2 / 2.0
                if np.isfinite(pot_j) and pot_j <= (1 - 2 * kappa * alpha_j) * pot:
                    break

            if not np.isfinite(pot_j):
                raise ConvergenceError(
                    "Non-finite residual in line search.", num_iter, _norm(r1, r2, r3)
                )

            x, s, y, z = x_j, s_j, y_j, z_j
            f, g, H = f_j, g_j, H_j
            r1, r2, r3 = r1_j, r2_j, r3_j

            logger.debug(
                f"Interior point iteration {num_iter}: step {alpha_j:.3e}, "
                + f"residual {_norm(r1, r2, r3):.3e}, barrier {mu:.3e}"
            )

        if not converged:
            raise ConvergenceError(
                f"Interior point method did not converge in {num_iter} iterations.",
                num_iter,
                _norm(r1, r2, s * z),
            )

        y_full = np.zeros(problem.num_constraints)
        y_full[rows] = y
        return OptimumState(
            x=x,
            y=y_full,
            z=z,
            f=float(f),
            g=g,
            H=H,
            h=problem.A @ x - problem.b,
            A=problem.A,
            num_iter=num_iter,
            converged=True,
        )


def _norm(r1: np.ndarray, r2: np.ndarray, r3: np.ndarray) -> float:
    return float(np.sqrt(np.sum(r1 * r1) + np.sum(r2 * r2) + np.sum(r3 * r3)))


def _max_step(v: np.ndarray, dv: np.ndarray, tau: float) -> float:
    """Largest step in ``(0, 1]`` keeping ``v + alpha dv`` positive, reduced by
    ``tau``."""
    neg = dv < 0.0
    if not np.any(neg):
        return 1.0
    return float(min(1.0, tau * np.min(-v[neg] / dv[neg])))
