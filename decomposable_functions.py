import numpy as np
from typing import Protocol
from scipy.sparse import issparse
from scipy.special import expit, log_expit

from size_checks import check_same_dimensionality, check_same_sizes


class DecomposableFunction(Protocol):
    """
    f(x) = (1/n) * sum_i f_i(x)

    Anything handed to IQNSolver must provide these three methods.
    """

    def num_functions(self):
        ...

    def gradient(self, x, i):
        ...

    def evaluate(self, x, i):
        ...


class QuadraticSumFunction:
    """
    f_i(x) = 1/2 (x - c_i)^T A_i (x - c_i) + o_i

    centers: (n, d)
    matrices: (n, d, d), identity when omitted
    offsets: (n,), zero when omitted
    """

    def __init__(self, centers, matrices=None, offsets=None):
        self.centers = np.atleast_2d(np.array(centers, dtype=float))
        n, d = self.centers.shape
        if matrices is None:
            self.matrices = np.broadcast_to(np.eye(d), (n, d, d)).copy()
        else:
            self.matrices = np.array(matrices, dtype=float).reshape(n, d, d)
        if offsets is None:
            self.offsets = np.zeros(n)
        else:
            self.offsets = np.array(offsets, dtype=float).reshape(n)

    def num_functions(self):
        return self.centers.shape[0]

    def evaluate(self, x, i):
        r = np.ravel(x) - self.centers[i]
        return 0.5 * float(r @ self.matrices[i] @ r) + self.offsets[i]

    def gradient(self, x, i):
        r = np.ravel(x) - self.centers[i]
        return (self.matrices[i] @ r).reshape(np.shape(x))

    def minimizer(self):
        """Closed-form minimizer of the average: (sum A_i) x = sum A_i c_i."""
        A = self.matrices.sum(axis=0)
        b = np.einsum("ijk,ik->j", self.matrices, self.centers)
        return np.linalg.solve(A, b)


class LinearSumFunction:
    """
    f_i(x) = a_i^T x

    The gradient never changes, so every secant pair has y = 0.
    """

    def __init__(self, slopes):
        self.slopes = np.atleast_2d(np.array(slopes, dtype=float))

    def num_functions(self):
        return self.slopes.shape[0]

    def evaluate(self, x, i):
        return float(self.slopes[i] @ np.ravel(x))

    def gradient(self, x, i):
        return self.slopes[i].copy().reshape(np.shape(x))


class LogisticRegressionFunction:
    def __init__(self, predictors, responses, lambda_=0.0):
        """
        L2-regularised logistic regression, one component per data point.

        Parameters:
        predictors (array-like or sparse matrix): Data, one point per column,
            shape (d - 1, N).
        responses (array-like): Labels in {0, 1}, shape (N,).
        lambda_ (float): L2 penalty on the non-intercept weights, spread
            evenly over the N components.

        The parameter vector has length d; entry 0 is the intercept.
        """
        if issparse(predictors):
            self.predictors = predictors.tocsc().astype(float)
        else:
            self.predictors = np.atleast_2d(np.array(predictors, dtype=float))
        self.responses = np.array(responses, dtype=float).ravel()
        self.lambda_ = float(lambda_)

        check_same_sizes(self.predictors, self.responses.reshape(1, -1),
                         "LogisticRegressionFunction()", "responses")
        if not np.all((self.responses == 0.0) | (self.responses == 1.0)):
            raise ValueError("LogisticRegressionFunction(): responses must be 0 or 1")

    def num_functions(self):
        return self.predictors.shape[1]

    def _point(self, i):
        if issparse(self.predictors):
            return self.predictors[:, i].toarray().ravel()
        return self.predictors[:, i]

    def _regularization(self, w):
        tail = w[1:]
        return self.lambda_ * float(tail @ tail) / (2.0 * self.num_functions())

    def evaluate(self, parameters, i):
        w = np.ravel(parameters)
        z = w[0] + w[1:] @ self._point(i)
        # -log sigma(z) for label 1, -log(1 - sigma(z)) = -log sigma(-z) for label 0
        sign = 1.0 if self.responses[i] == 1.0 else -1.0
        return -float(log_expit(sign * z)) + self._regularization(w)

    def gradient(self, parameters, i):
        w = np.ravel(parameters)
        x = self._point(i)
        z = w[0] + w[1:] @ x
        err = expit(z) - self.responses[i]

        g = np.empty_like(w)
        g[0] = err
        g[1:] = err * x + (self.lambda_ / self.num_functions()) * w[1:]
        return g.reshape(np.shape(parameters))

    def classify(self, parameters, predictors, decision_boundary=0.5):
        w = np.ravel(parameters)
        check_same_dimensionality(predictors, w.size - 1,
                                  "LogisticRegressionFunction.classify()")
        if issparse(predictors):
            z = w[0] + predictors.T @ w[1:]
        else:
            z = w[0] + np.atleast_2d(predictors).T @ w[1:]
        return (expit(np.ravel(z)) >= decision_boundary).astype(int)
