import numpy as np


class ComponentMemory:
    def __init__(self, function, starting_point):
        """
        Per-function memory for the incremental quasi-Newton method.

        For every component i it keeps the triple last observed when i was
        visited: the point t_i, the gradient y_i and the local Hessian
        approximation Q_i.

        Parameters:
        function: Decomposable objective (num_functions, gradient, evaluate).
        starting_point (np.ndarray): Point every record is seeded with.
        """
        t0 = np.array(starting_point, dtype=float)
        self.n = int(function.num_functions())
        self.d = t0.size

        # %INITIALISATION (n gradient evaluations)
        self.points = np.tile(t0.ravel(), (self.n, 1))
        self.curvatures = np.tile(np.eye(self.d), (self.n, 1, 1))
        self.gradients = np.empty((self.n, self.d))
        for i in range(self.n):
            self.gradients[i] = np.ravel(function.gradient(t0.copy(), i))

    def point(self, i):
        return self.points[i]

    def gradient(self, i):
        return self.gradients[i]

    def curvature(self, i):
        return self.curvatures[i]

    def moved(self, i, x):
        """True if x differs from the point stored for component i."""
        return np.linalg.norm(x - self.points[i]) > 0

    def updated_curvature(self, i, x, grad):
        """
        BFGS update of Q_i with the secant pair of component i.

        s = x - t_i,  y = grad - y_i
        Q_new = Q + y y^T / (y^T s) - Q s s^T Q / (s^T Q s)

        Q_new s = y holds, and Q_new stays positive semi-definite while
        y^T s > 0. Nothing is guarded: a zero denominator gives NaN/Inf,
        which the solver reports as a numerical failure.
        """
        Q = self.curvatures[i]
        delta_u = x - self.points[i]
        delta_f = grad - self.gradients[i]
        Qs = Q @ delta_u

        A = delta_f @ delta_u
        C = delta_u @ Qs
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            return Q + np.outer(delta_f, delta_f) / A - np.outer(Qs, Qs) / C

    def commit(self, i, x, grad, Q_new):
        self.points[i] = x
        self.gradients[i] = grad
        self.curvatures[i] = Q_new

    # From-scratch averages. O(n d^2), only for checking the solver's
    # incrementally maintained aggregates.
    def mean_curvature(self):
        return self.curvatures.mean(axis=0)

    def mean_product(self):
        return np.einsum("ijk,ik->j", self.curvatures, self.points) / self.n

    def mean_gradient(self):
        return self.gradients.mean(axis=0)
