"""Iterative LQR solver for unconstrained trajectory optimization.

This is the inner solver of the Augmented Lagrangian method. It minimizes any
objective exposing ``cost(traj)`` and ``cost_expansion(traj)`` by alternating
a Riccati backward pass over the quadratic model of the objective with a
closed-loop forward rollout and a backtracking line search.

Gains follow the convention ``δu = -K δx - α d`` with ``K = Quu⁻¹ Qux`` and
``d = Quu⁻¹ Qu``.
"""

from __future__ import annotations

import time

import jax
import jax.numpy as jnp
import jax.scipy as jsp
from jax import Array

from .cost import UnconstrainedObjective
from .exceptions import ErrorCode, _auglag_throw
from .problem import Problem, Trajectory
from .regularization import regularization_update
from .rollout import closed_loop_rollout
from .solver_options import iLQROptions
from .solver_stats import iLQRStats
from .types import Float, IntegrationScheme, RegularizationDirection, SolveStatus, Verbosity


@jax.jit
def _backward_step(
    A: Array,
    B: Array,
    lxx: Array,
    luu: Array,
    lux: Array,
    lx: Array,
    lu: Array,
    S_next: Array,
    s_next: Array,
    reg: Float,
) -> tuple[Array, Array, Array, Array, Array, Array]:
    """Single Riccati step with Cholesky-based gains."""
    n, m = A.shape[0], B.shape[1]

    # Action-value function expansion
    Qx = lx + A.T @ s_next
    Qu = lu + B.T @ s_next

    AtS = A.T @ S_next
    BtS = B.T @ S_next
    Qxx = lxx + AtS @ A
    Quu = luu + BtS @ B
    Qux = lux + BtS @ A

    Quu_reg = Quu + reg * jnp.eye(m)

    # Positive definiteness check before Cholesky
    min_eigenval = jnp.linalg.eigvalsh(0.5 * (Quu_reg + Quu_reg.T)).min()
    success = min_eigenval > 1e-12

    def successful_decomp():
        Quu_chol = jsp.linalg.cholesky(Quu_reg, lower=True)

        K = jsp.linalg.solve_triangular(Quu_chol, Qux, lower=True)
        K = jsp.linalg.solve_triangular(Quu_chol.T, K, lower=False)

        d = jsp.linalg.solve_triangular(Quu_chol, Qu, lower=True)
        d = jsp.linalg.solve_triangular(Quu_chol.T, d, lower=False)

        # Cost-to-go
        KtQuu = K.T @ Quu
        KtQux = K.T @ Qux
        S = Qxx + KtQuu @ K - KtQux - KtQux.T
        s = Qx + KtQuu @ d - K.T @ Qu - Qux.T @ d

        dV = jnp.array([d @ Qu, 0.5 * d @ Quu @ d])
        return K, d, 0.5 * (S + S.T), s, dV

    def failed_decomp():
        return jnp.zeros((m, n)), jnp.zeros(m), jnp.zeros((n, n)), jnp.zeros(n), jnp.zeros(2)

    K, d, S, s, dV = jax.lax.cond(success, successful_decomp, failed_decomp)
    return K, d, S, s, dV, success


@jax.jit
def _todorov_gradient(d: Array, U: Array) -> Array:
    return jnp.mean(jnp.max(jnp.abs(d) / (jnp.abs(U) + 1.0), axis=1))


class iLQRSolver:
    """Unconstrained iLQR solver for zero-order hold problems.

    Args:
        problem: Problem whose dynamics are rolled out
        opts: Solver options
    """

    def __init__(self, problem: Problem, opts: iLQROptions | None = None):
        if problem.integration != IntegrationScheme.ZOH:
            _auglag_throw(
                "The iLQR backward pass supports zero-order hold only",
                ErrorCode.UNSUPPORTED_INTEGRATION,
            )
        self.problem = problem
        self.opts = opts if opts is not None else iLQROptions()
        self.stats = iLQRStats()

        N, n, mm = problem.N, problem.n, problem.mm
        self.K = [jnp.zeros((mm, n)) for _ in range(N - 1)]
        self.d = [jnp.zeros(mm) for _ in range(N - 1)]
        self.dV = jnp.zeros(2)
        self.rho = self.opts.bp_reg_initial
        self.drho = 0.0

    def reset(self) -> None:
        """Reset statistics and regularization for another solve."""
        self.stats.reset()
        self.rho = self.opts.bp_reg_initial
        self.drho = 0.0

    def _regularize(self, direction: RegularizationDirection) -> None:
        self.rho, self.drho = regularization_update(
            self.rho,
            self.drho,
            direction,
            self.opts.bp_reg_increase_factor,
            self.opts.bp_reg_min,
        )

    def backward_pass(self, objective: UnconstrainedObjective, traj: Trajectory) -> bool:
        """Compute the gains about ``traj``.

        Regularization is increased and the pass restarted whenever a control
        Hessian is not positive definite.

        Returns:
            False if the regularization exceeded ``bp_reg_max``
        """
        problem = self.problem
        N = problem.N
        E = objective.cost_expansion(traj)
        jacobians = [problem.step_jacobian(traj.X[k], traj.U[k]) for k in range(N - 1)]

        while True:
            S, s = E.Qxx[N - 1], E.Qx[N - 1]
            dV = jnp.zeros(2)
            failed = False
            for k in range(N - 2, -1, -1):
                A, B = jacobians[k]
                K, d, S, s, dV_k, success = _backward_step(
                    A, B, E.Qxx[k], E.Quu[k], E.Qux[k], E.Qx[k], E.Qu[k], S, s, self.rho
                )
                if not success:
                    failed = True
                    break
                self.K[k] = K
                self.d[k] = d
                dV = dV + dV_k

            if not failed:
                self.dV = dV
                return True

            self._regularize(RegularizationDirection.INCREASE)
            if self.rho > self.opts.bp_reg_max:
                return False

    def forward_pass(
        self, objective: UnconstrainedObjective, traj: Trajectory, J_prev: Float
    ) -> tuple[Float, Float, Trajectory | None]:
        """Backtracking line search over closed-loop rollouts.

        A step is accepted when the ratio of actual to expected decrease lies
        within the line search bounds.

        Returns:
            Tuple of (cost, step size, accepted trajectory or None)
        """
        opts = self.opts
        alpha = 1.0
        for _ in range(opts.iterations_linesearch):
            ok, candidate = closed_loop_rollout(self.problem, traj, self.K, self.d, alpha, opts)
            if ok:
                J = objective.cost(candidate)
                expected = float(alpha * self.dV[0] - alpha**2 * self.dV[1])
                if expected > 0.0:
                    z = (J_prev - J) / expected
                    if opts.line_search_lower_bound <= z <= opts.line_search_upper_bound:
                        return J, alpha, candidate
            alpha /= 2.0
        return J_prev, 0.0, None

    def gradient(self, traj: Trajectory) -> Float:
        """Todorov's gradient norm ``mean_k max_i |d[k]_i| / (|U[k]_i| + 1)``."""
        return float(_todorov_gradient(jnp.stack(self.d), jnp.stack(traj.U)))

    def solve(self, objective: UnconstrainedObjective, traj: Trajectory) -> tuple[Float, int]:
        """Minimize ``objective`` starting from the dynamically consistent ``traj``.

        ``traj`` is updated in place with the best trajectory found. Evaluating
        the objective at the returned trajectory is the last thing the solver
        does, so any state the objective keeps refers to that trajectory.

        Returns:
            Tuple of (cost, number of iterations)
        """
        opts = self.opts
        stats = self.stats
        start_time = time.time()

        J = objective.cost(traj)
        stats.status = SolveStatus.UNSOLVED

        if opts.verbose != Verbosity.SILENT:
            print("STARTING iLQR SOLVE....")
            print(f"  Initial Cost: {J}")

        for iteration in range(opts.iterations):
            if not self.backward_pass(objective, traj):
                stats.status = SolveStatus.BACKWARD_PASS_FAILED
                if opts.verbose != Verbosity.SILENT:
                    print(f"Backward pass failed: rho = {self.rho:.3g}")
                break

            gradient = self.gradient(traj)
            J_new, alpha, accepted = self.forward_pass(objective, traj, J)

            if accepted is None:
                stats.line_search_failures += 1
                self._regularize(RegularizationDirection.INCREASE)
                # the line search left the objective at a rejected candidate
                J_new = objective.cost(traj)
            else:
                traj.X[:] = accepted.X
                traj.U[:] = accepted.U
                self._regularize(RegularizationDirection.DECREASE)

            dJ = J - J_new
            J = J_new

            stats.iterations = iteration + 1
            stats.cost.append(J)
            stats.gradient.append(gradient)
            stats.step_size.append(alpha)
            stats.regularization.append(self.rho)

            if opts.verbose == Verbosity.INNER:
                print(
                    f"  iter = {iteration:3d}, J = {J:10.4g}, dJ = {dJ:10.3g}, "
                    f"expected = {float(self.dV[0]):10.3g}, alpha = {alpha:8.3g}, "
                    f"rho = {self.rho:7.2g}, grad = {gradient:8.3e}"
                )

            if 0.0 < dJ < opts.cost_tolerance or gradient < opts.gradient_norm_tolerance:
                stats.status = SolveStatus.SUCCESS
                break

        if stats.status == SolveStatus.UNSOLVED:
            stats.status = SolveStatus.MAX_ITERATIONS

        stats.solve_time = (time.time() - start_time) * 1000  # Convert to milliseconds
        if opts.verbose != Verbosity.SILENT:
            print("iLQR SOLVE FINISHED!")

        return J, stats.iterations
