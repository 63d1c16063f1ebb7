import numpy as np
from dataclasses import dataclass
from enum import Enum

from ComponentMemory import ComponentMemory


class IQNStatus(Enum):
    """Where a run stands. Anything but RUNNING is terminal."""

    RUNNING = "running"
    CONVERGED = "converged"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    NUMERICAL_FAILURE = "numerical_failure"


@dataclass
class AggregateState:
    """
    Running averages over all components, updated one component at a time.

    B = (1/n) sum Q_i          (aggregate Hessian approximation)
    u = (1/n) sum Q_i t_i      (aggregate Hessian-variable product)
    g = (1/n) sum y_i          (aggregate gradient)
    x : current iterate, flattened; `shape` is the caller's shape.
    """

    B: np.ndarray
    u: np.ndarray
    g: np.ndarray
    x: np.ndarray
    shape: tuple


class IQNSolver:
    """
    Incremental Quasi-Newton (IQN) for f(x) = (1/n) sum_i f_i(x).

    Each inner step visits a single component in cyclic order, refreshes its
    BFGS curvature, folds the change into the aggregates and takes a damped
    Newton step
        x <- a B^{-1} (u - g) + (1 - a) x.
    After each full sweep the mean objective is evaluated for monitoring and
    termination.

    Reference: A. Mokhtari, M. Eisen, A. Ribeiro, "IQN: An Incremental
    Quasi-Newton Method with Local Superlinear Convergence Rate".
    """

    def __init__(self, step_size=0.01, max_iterations=100000, tolerance=1e-5,
                 seed=None, verbose=False):
        """
        Parameters:
        step_size (float): Damping factor a in (0, 1]; 1 is the full Newton step.
        max_iterations (int): Maximum number of sweeps over all components.
        tolerance (float): Stop once the mean objective drops below this.
        seed (int or None): Seed for the random point the memory starts from.
        verbose (bool): Print a progress table and a final summary.
        """
        self.step_size = float(step_size)
        self.max_iterations = int(max_iterations)
        self.tolerance = float(tolerance)
        self.seed = seed
        self.verbose = bool(verbose)

        if not 0.0 < self.step_size <= 1.0:
            raise ValueError(f"step_size must be in (0, 1], got {self.step_size}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got {self.max_iterations}")
        if not self.tolerance >= 0.0:
            raise ValueError(f"tolerance must be non-negative, got {self.tolerance}")

        self.status = IQNStatus.RUNNING
        self.memory = None
        self.state = None
        self.x = None
        self.history = {'iter': [], 'obj': [], 'updates': [], 'step_norm': []}

    # ---------------------------
    # Initialisation
    # ---------------------------
    def initialize(self, function, iterate):
        """
        Build the per-function memory and the aggregates.

        The memory is seeded from a freshly drawn standard normal point, not
        from `iterate`; the iterate itself starts where the caller put it.
        """
        x = np.array(iterate, dtype=float)
        rng = np.random.default_rng(self.seed)
        t0 = rng.standard_normal(x.shape)

        self.memory = ComponentMemory(function, t0)
        self.state = AggregateState(
            B=np.eye(x.size),
            u=t0.ravel().copy(),
            g=self.memory.mean_gradient(),
            x=x.ravel().copy(),
            shape=x.shape,
        )
        return self.state

    # ---------------------------
    # Inner step and sweep
    # ---------------------------
    def inner_step(self, function, state, it):
        """
        Visit component `it`. Returns False (and touches nothing) if the
        iterate has not moved since the last visit.
        """
        memory = self.memory
        if not memory.moved(it, state.x):
            return False

        x = state.x
        grad = np.ravel(function.gradient(x.reshape(state.shape).copy(), it)).astype(float)
        Q_new = memory.updated_curvature(it, x, grad)

        # Deltas against the old record, before it is overwritten.
        Q_old = memory.curvature(it)
        n = memory.n
        with np.errstate(invalid="ignore", over="ignore"):
            state.B += (Q_new - Q_old) / n
            state.u += (Q_new @ x - Q_old @ memory.point(it)) / n
            state.g += (grad - memory.gradient(it)) / n

        memory.commit(it, x.copy(), grad, Q_new)

        state.x = self._newton_step(state)
        return True

    def _newton_step(self, state):
        with np.errstate(invalid="ignore", over="ignore", divide="ignore"):
            try:
                h = np.linalg.solve(state.B, state.u - state.g)
            except np.linalg.LinAlgError:
                if self.verbose:
                    print("Error: aggregate Hessian approximation is singular.")
                return np.full_like(state.x, np.nan)
            return self.step_size * h + (1.0 - self.step_size) * state.x

    def sweep(self, function, state):
        """One cyclic pass: components 1, 2, ..., n-1, 0. Returns the number of updates."""
        n = self.memory.n
        updates = 0
        for j in range(n):
            it = (j + 1) % n
            if self.inner_step(function, state, it):
                updates += 1
        return updates

    def objective(self, function, state):
        """Mean of all component values at the current iterate."""
        x = state.x.reshape(state.shape)
        n = self.memory.n
        with np.errstate(invalid="ignore", over="ignore"):
            total = 0.0
            for i in range(n):
                total += function.evaluate(x.copy(), i)
            return float(total) / n

    # ---------------------------
    # Main optimizer
    # ---------------------------
    def optimize(self, function, iterate):
        """
        Minimise the decomposable `function` starting from `iterate`.

        Parameters:
        function: Object with num_functions(), gradient(x, i), evaluate(x, i).
        iterate (np.ndarray): Starting point, any shape. If it is a float
            ndarray it is overwritten with the final iterate; integer and
            other arrays are left untouched (read self.x instead).

        Returns:
        overall_objective (float): Mean objective after the last sweep. The
            reason for stopping is left in self.status.
        """
        state = self.initialize(function, iterate)
        self.status = IQNStatus.RUNNING
        self.history = {'iter': [], 'obj': [], 'updates': [], 'step_norm': []}

        if self.verbose:
            print(f"{'Sweep':>5} {'Objective':>14} {'Updates':>8} {'StepNorm':>12}")
            print("-" * 42)

        overall_objective = 0.0
        for k in range(1, self.max_iterations + 1):
            x_prev = state.x.copy()
            updates = self.sweep(function, state)
            overall_objective = self.objective(function, state)
            step_norm = float(np.linalg.norm(state.x - x_prev))

            self.history['iter'].append(k)
            self.history['obj'].append(overall_objective)
            self.history['updates'].append(updates)
            self.history['step_norm'].append(step_norm)

            if self.verbose:
                print(f"{k:5d} {overall_objective:14.6e} {updates:8d} {step_norm:12.3e}")

            if np.isnan(overall_objective) or np.isinf(overall_objective):
                self.status = IQNStatus.NUMERICAL_FAILURE
                if self.verbose:
                    print("---")
                    print(f"Error: objective is {overall_objective} at sweep {k}. "
                          "Stopping. Try a smaller step size?")
                break

            if overall_objective < self.tolerance:
                self.status = IQNStatus.CONVERGED
                if self.verbose:
                    print("-" * 42)
                    print(f"Converged (objective < {self.tolerance:.1e}) at sweep {k}")
                break

        if self.status == IQNStatus.RUNNING:
            self.status = IQNStatus.MAX_ITERATIONS_REACHED
            if self.verbose:
                print("---")
                print(f"Reached maximum iterations ({self.max_iterations}) "
                      "without full convergence.")

        self.x = state.x.reshape(state.shape).copy()
        if isinstance(iterate, np.ndarray) and np.issubdtype(iterate.dtype, np.floating):
            iterate[...] = self.x

        if self.verbose:
            print("\n" + "=" * 42)
            print("OPTIMIZATION COMPLETE")
            print("=" * 42)
            print(f"Status: {self.status.value}")
            print(f"Final objective: {overall_objective:.10e}")
            print(f"Sweeps: {len(self.history['iter'])}")
            print("=" * 42)

        return overall_objective
