import math

import numpy as np
import pytest

from slampose.epnp import (
    EPnP,
    PoseEstimate,
    barycentric_coordinates,
    choose_control_points,
    estimate_rotation_translation,
)

FX, FY, CX, CY = 500.0, 480.0, 320.0, 240.0


def _rotation(ax, ay, az):
    rx = np.array([[1, 0, 0], [0, math.cos(ax), -math.sin(ax)], [0, math.sin(ax), math.cos(ax)]])
    ry = np.array([[math.cos(ay), 0, math.sin(ay)], [0, 1, 0], [-math.sin(ay), 0, math.cos(ay)]])
    rz = np.array([[math.cos(az), -math.sin(az), 0], [math.sin(az), math.cos(az), 0], [0, 0, 1]])
    return rz @ ry @ rx


@pytest.fixture
def scene():
    rng = np.random.default_rng(7)
    world = rng.uniform(-1.0, 1.0, size=(12, 3))
    rotation = _rotation(0.1, -0.2, 0.3)
    translation = np.array([0.1, -0.2, 5.0])
    camera = world @ rotation.T + translation
    image = np.column_stack([
        CX + FX * camera[:, 0] / camera[:, 2],
        CY + FY * camera[:, 1] / camera[:, 2],
    ])
    return world, image, rotation, translation


def test_compute_pose_recovers_ground_truth(scene):
    world, image, rotation, translation = scene
    pose = EPnP(FX, FY, CX, CY).compute_pose(world, image)
    assert np.allclose(pose.rotation, rotation, atol=1e-6)
    assert np.allclose(pose.translation, translation, atol=1e-5)
    assert pose.error < 1e-6


def test_compute_pose_rotation_is_proper(scene):
    world, image, _, _ = scene
    pose = EPnP(FX, FY, CX, CY).compute_pose(world, image)
    assert np.allclose(pose.rotation @ pose.rotation.T, np.eye(3), atol=1e-8)
    assert np.linalg.det(pose.rotation) == pytest.approx(1.0)


def test_pose_matrix_layout(scene):
    world, image, _, _ = scene
    pose = EPnP(FX, FY, CX, CY).compute_pose(world, image)
    matrix = pose.matrix
    assert np.array_equal(matrix[3], [0.0, 0.0, 0.0, 1.0])
    assert np.array_equal(matrix[:3, :3], pose.rotation)
    assert np.array_equal(matrix[:3, 3], pose.translation)


def test_reprojection_error_zero_for_exact_pose(scene):
    world, image, rotation, translation = scene
    error = EPnP(FX, FY, CX, CY).reprojection_error(rotation, translation, world, image)
    assert error == pytest.approx(0.0, abs=1e-9)


def test_reprojection_error_of_shifted_measurements(scene):
    world, image, rotation, translation = scene
    shifted = image + np.array([3.0, 4.0])
    error = EPnP(FX, FY, CX, CY).reprojection_error(rotation, translation, world, shifted)
    assert error == pytest.approx(5.0)


def test_compute_pose_rejects_mismatched_lengths(scene):
    world, image, _, _ = scene
    with pytest.raises(ValueError):
        EPnP(FX, FY, CX, CY).compute_pose(world, image[:-1])


def test_compute_pose_rejects_bad_shape():
    with pytest.raises(ValueError):
        EPnP(FX, FY, CX, CY).compute_pose(np.zeros((4, 2)), np.zeros((4, 2)))


def test_choose_control_points_centroid_and_orthogonal_axes(scene):
    world, _, _, _ = scene
    cws = choose_control_points(world)
    assert np.allclose(cws[0], world.mean(axis=0))
    axes = cws[1:] - cws[0]
    gram = axes @ axes.T
    assert np.allclose(gram - np.diag(np.diag(gram)), 0.0, atol=1e-10)


def test_barycentric_coordinates_reconstruct_points(scene):
    world, _, _, _ = scene
    cws = choose_control_points(world)
    alphas = barycentric_coordinates(world, cws)
    assert np.allclose(alphas.sum(axis=1), 1.0)
    assert np.allclose(alphas @ cws, world)


def test_barycentric_coordinates_need_four_control_points(scene):
    world, _, _, _ = scene
    with pytest.raises(ValueError):
        barycentric_coordinates(world, np.zeros((3, 3)))


def test_estimate_rotation_translation_recovers_alignment(scene):
    world, _, rotation, translation = scene
    camera = world @ rotation.T + translation
    est_rotation, est_translation = estimate_rotation_translation(camera, world)
    assert np.allclose(est_rotation, rotation)
    assert np.allclose(est_translation, translation)


def test_pose_estimate_keeps_error():
    pose = PoseEstimate(np.eye(3), np.zeros(3), 2.5)
    assert pose.error == 2.5
    assert np.array_equal(pose.matrix, np.eye(4))