"""Numerical building blocks of the EPnP pose estimator.

The functions here work on the quantities EPnP uses to recover the camera
coordinates of the four control points: the 6x10 matrix ``L`` relating the
ten products of betas to the six squared control-point distances, the
distance vector ``rho`` and the beta coefficients themselves.
"""

from __future__ import annotations

import math

import numpy as np

# Control point pairs in the order EPnP uses for the six distance constraints.
_PAIRS = ((0, 1), (0, 2), (0, 3), (1, 2), (1, 3), (2, 3))
_FIRST = np.array([first for first, _ in _PAIRS])
_SECOND = np.array([second for _, second in _PAIRS])

_GAUSS_NEWTON_ITERATIONS = 5


def qr_solve(a, b):
    """Solve ``a @ x = b`` in the least-squares sense with Householder QR.

    ``a`` must have at least as many rows as columns. Raises
    ``numpy.linalg.LinAlgError`` when a column of ``a`` is entirely zero.
    """
    a = np.array(a, dtype=float)
    b = np.array(b, dtype=float).reshape(-1)
    if a.ndim != 2:
        raise ValueError("a must be a two-dimensional matrix")
    nr, nc = a.shape
    if nr < nc:
        raise ValueError("a must have at least as many rows as columns")
    if b.shape[0] != nr:
        raise ValueError("b must have one entry per row of a")

    a1 = np.zeros(nc)
    a2 = np.zeros(nc)
    for k in range(nc):
        column = a[k:, k]
        eta = float(np.max(np.abs(column)))
        if eta == 0.0:
            raise np.linalg.LinAlgError("matrix is singular")
        column /= eta
        sigma = math.sqrt(float(column @ column))
        if column[0] < 0:
            sigma = -sigma
        column[0] += sigma
        a1[k] = sigma * column[0]
        a2[k] = -eta * sigma
        if k + 1 < nc:
            tau = (column @ a[k:, k + 1:]) / a1[k]
            a[k:, k + 1:] -= np.outer(column, tau)

    # b <- Q^T b
    for j in range(nc):
        reflector = a[j:, j]
        tau = float(reflector @ b[j:]) / a1[j]
        b[j:] -= tau * reflector

    # x = R^-1 b
    x = np.zeros(nc)
    for i in reversed(range(nc)):
        x[i] = (b[i] - a[i, i + 1:] @ x[i + 1:]) / a2[i]
    return x


def mat_to_quat(rotation):
    """Convert a 3x3 rotation matrix into a quaternion ``(x, y, z, w)``."""
    r = np.asarray(rotation, dtype=float)
    trace = r[0, 0] + r[1, 1] + r[2, 2]

    if trace > 0.0:
        q = np.array([r[1, 2] - r[2, 1], r[2, 0] - r[0, 2], r[0, 1] - r[1, 0], trace + 1.0])
        n4 = q[3]
    elif r[0, 0] > r[1, 1] and r[0, 0] > r[2, 2]:
        q = np.array([
            1.0 + r[0, 0] - r[1, 1] - r[2, 2],
            r[1, 0] + r[0, 1],
            r[2, 0] + r[0, 2],
            r[1, 2] - r[2, 1],
        ])
        n4 = q[0]
    elif r[1, 1] > r[2, 2]:
        q = np.array([
            r[1, 0] + r[0, 1],
            1.0 + r[1, 1] - r[0, 0] - r[2, 2],
            r[2, 1] + r[1, 2],
            r[2, 0] - r[0, 2],
        ])
        n4 = q[1]
    else:
        q = np.array([
            r[2, 0] + r[0, 2],
            r[2, 1] + r[1, 2],
            1.0 + r[2, 2] - r[0, 0] - r[1, 1],
            r[0, 1] - r[1, 0],
        ])
        n4 = q[2]

    return q * (0.5 / math.sqrt(n4))


def relative_error(rotation_true, translation_true, rotation_est, translation_est):
    """Return the relative rotation and translation errors of an estimate.

    The rotation error compares quaternions and accounts for their sign
    ambiguity; the translation error is normalised by the true translation.
    """
    q_true = mat_to_quat(rotation_true)
    q_est = mat_to_quat(rotation_est)
    q_norm = float(np.linalg.norm(q_true))

    rot_err1 = float(np.linalg.norm(q_true - q_est)) / q_norm
    rot_err2 = float(np.linalg.norm(q_true + q_est)) / q_norm

    t_true = np.asarray(translation_true, dtype=float)
    t_est = np.asarray(translation_est, dtype=float)
    transl_err = float(np.linalg.norm(t_true - t_est)) / float(np.linalg.norm(t_true))

    return min(rot_err1, rot_err2), transl_err


def compute_l_6x10(ut):
    """Build the 6x10 matrix ``L`` from the right singular vectors of ``M^T M``.

    ``ut`` is the 12x12 matrix whose rows are singular vectors sorted by
    decreasing singular value; the last four rows form the null space basis.
    """
    ut = np.asarray(ut, dtype=float)
    v = ut[[11, 10, 9, 8]].reshape(4, 4, 3)
    dv = v[:, _FIRST, :] - v[:, _SECOND, :]

    def dot(i, j):
        return np.einsum("pk,pk->p", dv[i], dv[j])

    return np.column_stack([
        dot(0, 0),
        2.0 * dot(0, 1),
        dot(1, 1),
        2.0 * dot(0, 2),
        2.0 * dot(1, 2),
        dot(2, 2),
        2.0 * dot(0, 3),
        2.0 * dot(1, 3),
        2.0 * dot(2, 3),
        dot(3, 3),
    ])


def compute_rho(control_points):
    """Return the six squared distances between the four world control points."""
    cws = np.asarray(control_points, dtype=float)
    diff = cws[_FIRST] - cws[_SECOND]
    return np.einsum("pk,pk->p", diff, diff)


def _least_squares(matrix, rho):
    return np.linalg.lstsq(matrix, np.asarray(rho, dtype=float), rcond=None)[0]


def find_betas_approx_1(l_6x10, rho):
    """Approximate the betas from ``[B11 B12 B13 B14]``."""
    l_6x10 = np.asarray(l_6x10, dtype=float)
    b4 = _least_squares(l_6x10[:, [0, 1, 3, 6]], rho)

    betas = np.zeros(4)
    if b4[0] < 0:
        betas[0] = math.sqrt(-b4[0])
        betas[1:] = -b4[1:] / betas[0]
    else:
        betas[0] = math.sqrt(b4[0])
        betas[1:] = b4[1:] / betas[0]
    return betas


def _leading_pair(b):
    if b[0] < 0:
        first = math.sqrt(-b[0])
        second = math.sqrt(-b[2]) if b[2] < 0 else 0.0
    else:
        first = math.sqrt(b[0])
        second = math.sqrt(b[2]) if b[2] > 0 else 0.0
    if b[1] < 0:
        first = -first
    return first, second


def find_betas_approx_2(l_6x10, rho):
    """Approximate the betas from ``[B11 B12 B22]``."""
    l_6x10 = np.asarray(l_6x10, dtype=float)
    b3 = _least_squares(l_6x10[:, [0, 1, 2]], rho)
    first, second = _leading_pair(b3)
    return np.array([first, second, 0.0, 0.0])


def find_betas_approx_3(l_6x10, rho):
    """Approximate the betas from ``[B11 B12 B22 B13 B23]``."""
    l_6x10 = np.asarray(l_6x10, dtype=float)
    b5 = _least_squares(l_6x10[:, [0, 1, 2, 3, 4]], rho)
    first, second = _leading_pair(b5)
    with np.errstate(divide="ignore", invalid="ignore"):
        third = np.float64(b5[3]) / np.float64(first)
    return np.array([first, second, third, 0.0])


def _betas10(betas):
    b0, b1, b2, b3 = betas
    return np.array([
        b0 * b0, b0 * b1, b1 * b1, b0 * b2, b1 * b2,
        b2 * b2, b0 * b3, b1 * b3, b2 * b3, b3 * b3,
    ])


def _gauss_newton_system(l_6x10, rho, betas):
    b0, b1, b2, b3 = betas
    l = l_6x10
    jacobian = np.column_stack([
        2 * l[:, 0] * b0 + l[:, 1] * b1 + l[:, 3] * b2 + l[:, 6] * b3,
        l[:, 1] * b0 + 2 * l[:, 2] * b1 + l[:, 4] * b2 + l[:, 7] * b3,
        l[:, 3] * b0 + l[:, 4] * b1 + 2 * l[:, 5] * b2 + l[:, 8] * b3,
        l[:, 6] * b0 + l[:, 7] * b1 + l[:, 8] * b2 + 2 * l[:, 9] * b3,
    ])
    residual = rho - l @ _betas10(betas)
    return jacobian, residual


def gauss_newton(l_6x10, rho, betas):
    """Refine the betas with five Gauss-Newton steps and return the result."""
    l_6x10 = np.asarray(l_6x10, dtype=float)
    rho = np.asarray(rho, dtype=float)
    refined = np.array(betas, dtype=float)
    for _ in range(_GAUSS_NEWTON_ITERATIONS):
        jacobian, residual = _gauss_newton_system(l_6x10, rho, refined)
        refined = refined + qr_solve(jacobian, residual)
    return refined