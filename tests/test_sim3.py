import math

import numpy as np
import pytest

from slampose.sim3 import (
    Sim3,
    Sim3Match,
    Sim3Result,
    Sim3Solver,
    camera_to_image,
    compute_sim3,
    project,
)

K = np.array([[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]])


def _rotation(ax, ay, az):
    rx = np.array([[1, 0, 0], [0, math.cos(ax), -math.sin(ax)], [0, math.sin(ax), math.cos(ax)]])
    ry = np.array([[math.cos(ay), 0, math.sin(ay)], [0, 1, 0], [-math.sin(ay), 0, math.cos(ay)]])
    rz = np.array([[math.cos(az), -math.sin(az), 0], [math.sin(az), math.cos(az), 0], [0, 0, 1]])
    return rz @ ry @ rx


TRUE_ROTATION = _rotation(0.05, -0.1, 0.08)
TRUE_TRANSLATION = np.array([0.2, -0.1, 0.3])
TRUE_SCALE = 1.5


def _points2(count, seed=3):
    rng = np.random.default_rng(seed)
    xy = rng.uniform(-1.0, 1.0, size=(count, 2))
    z = rng.uniform(2.0, 6.0, size=(count, 1))
    return np.hstack([xy, z])


def _apply(points):
    return TRUE_SCALE * points @ TRUE_ROTATION.T + TRUE_TRANSLATION


def _matches(count, outliers=()):
    p2 = _points2(count)
    p1 = _apply(p2)
    for i in outliers:
        p1[i] = p1[i] + np.array([1.0, 1.0, 0.0])
    return [Sim3Match(p1[i], p2[i], 1.0, 1.0, 2 * i) for i in range(count)]


def test_compute_sim3_recovers_similarity():
    p2 = _points2(5)
    sim = compute_sim3(_apply(p2), p2)
    assert np.allclose(sim.rotation, TRUE_ROTATION, atol=1e-8)
    assert np.allclose(sim.translation, TRUE_TRANSLATION, atol=1e-8)
    assert sim.scale == pytest.approx(TRUE_SCALE)


def test_compute_sim3_from_three_points():
    p2 = _points2(3)
    sim = compute_sim3(_apply(p2), p2)
    assert np.allclose(sim.scale * p2 @ sim.rotation.T + sim.translation, _apply(p2), atol=1e-8)


def test_compute_sim3_fixed_scale():
    p2 = _points2(5)
    p1 = p2 @ TRUE_ROTATION.T + TRUE_TRANSLATION
    sim = compute_sim3(p1, p2, True)
    assert sim.scale == 1.0
    assert np.allclose(sim.rotation, TRUE_ROTATION, atol=1e-8)


def test_compute_sim3_rejects_mismatched_shapes():
    with pytest.raises(ValueError):
        compute_sim3(np.zeros((3, 3)), np.zeros((4, 3)))


def test_sim3_inverse_composes_to_identity():
    sim = Sim3(TRUE_ROTATION, TRUE_TRANSLATION, TRUE_SCALE)
    assert np.allclose(sim.matrix @ sim.inverse().matrix, np.eye(4))
    assert sim.inverse().scale == pytest.approx(1.0 / TRUE_SCALE)


def test_camera_to_image_principal_point():
    pixels = camera_to_image([[0.0, 0.0, 1.0], [1.0, 2.0, 2.0]], K)
    assert np.allclose(pixels[0], [320.0, 240.0])
    assert np.allclose(pixels[1], [570.0, 740.0])


def test_project_identity_matches_camera_to_image():
    points = _points2(6)
    assert np.allclose(project(points, np.eye(4), K), camera_to_image(points, K))


def test_project_with_similarity_matches_transformed_points():
    points = _points2(6)
    sim = Sim3(TRUE_ROTATION, TRUE_TRANSLATION, TRUE_SCALE)
    assert np.allclose(project(points, sim.matrix, K), camera_to_image(_apply(points), K))


def test_solver_finds_similarity_and_inliers():
    outliers = (1, 4, 9)
    matches = _matches(20, outliers)
    solver = Sim3Solver(matches, 40, K, K, False, 11)
    result = solver.find()
    assert isinstance(result, Sim3Result)
    assert result.transform is not None
    assert result.n_inliers == 17
    assert len(result.inliers) == 40
    expected = [False] * 40
    for i in range(20):
        if i not in outliers:
            expected[2 * i] = True
    assert result.inliers == expected
    assert result.transform.scale == pytest.approx(TRUE_SCALE)
    assert np.allclose(result.transform.rotation, TRUE_ROTATION, atol=1e-6)


def test_solver_with_too_few_matches_gives_up():
    matches = _matches(4)
    solver = Sim3Solver(matches, 4, K, K, False, 1)
    result = solver.iterate(5)
    assert result.transform is None
    assert result.no_more
    assert result.inliers == [False] * 4


def test_solver_single_iteration_when_all_inliers_required():
    matches = _matches(8)
    solver = Sim3Solver(matches, 8, K, K, False, 2)
    solver.set_ransac_parameters(0.99, 8, 300)
    assert solver.ransac_max_iterations == 1
    result = solver.iterate(10)
    assert result.transform is None
    assert result.no_more
    assert solver.iterations == 1
    assert solver.best_n_inliers == 8
    assert solver.best.scale == pytest.approx(TRUE_SCALE)


def test_solver_iteration_budget_respects_maximum():
    matches = _matches(20)
    solver = Sim3Solver(matches, 20, K, K, False, 5)
    solver.set_ransac_parameters(0.99, 6, 3)
    assert solver.ransac_max_iterations == 3