import numpy as np
import pytest

from contact_mpm.constitutive import update_stresses, apply_tension_cutoff, von_mises_stress, deviatoric_strain

E = 1e6
NU = 0.49
LAME_LAMBDA = E * NU / ((1 + NU) * (1 - 2 * NU))
SHEAR_MODULUS = E / (2 * (1 + NU))
YIELD_STRESS = 1e3


def trial_stress(stress, grad_u):
    eps = 0.5 * (grad_u + grad_u.T)
    w = 0.5 * (grad_u - grad_u.T)
    jaumann = stress @ w
    return (
        stress
        + LAME_LAMBDA * np.trace(eps) * np.eye(3)
        + 2 * SHEAR_MODULUS * eps
        + (jaumann + jaumann.T)
    )


def update(stress, grad_u, device):
    return update_stresses([stress], [grad_u], LAME_LAMBDA, SHEAR_MODULUS, YIELD_STRESS, device=device)[0]


def test_zero_increment_keeps_admissible_stress(device):
    stress = np.diag([-500.0, -1200.0, -500.0])
    result = update(stress, np.zeros((3, 3)), device)
    np.testing.assert_allclose(result, stress, rtol=1e-6)


def test_elastic_trial_is_returned_unchanged(device):
    stress = np.diag([-2000.0, -2000.0, -2000.0])
    grad_u = np.array([
        [-1e-5, 2e-6, 0.0],
        [1e-6, -2e-5, 0.0],
        [0.0, 0.0, 0.0],
    ])
    expected = trial_stress(stress, grad_u)
    assert von_mises_stress([expected])[0] < YIELD_STRESS

    result = update(stress, grad_u, device)
    np.testing.assert_allclose(result, expected, rtol=1e-5, atol=1e-3)


def test_jaumann_term_rotates_stress(device):
    # Pure spin: no strain, stress is only co-rotated
    stress = np.diag([-300.0, -900.0, -300.0])
    theta = 1e-4
    grad_u = np.array([
        [0.0, -theta, 0.0],
        [theta, 0.0, 0.0],
        [0.0, 0.0, 0.0],
    ])
    result = update(stress, grad_u, device)
    expected = trial_stress(stress, grad_u)
    assert expected[0, 1] != 0.0
    np.testing.assert_allclose(result, expected, rtol=1e-5, atol=1e-4)
    np.testing.assert_allclose(result, result.T, atol=1e-6)


def test_plastic_trial_returns_to_yield_surface(device):
    stress = np.diag([-5000.0, -5000.0, -5000.0])
    grad_u = np.array([
        [0.0, 5e-3, 0.0],
        [5e-3, 0.0, 0.0],
        [0.0, 0.0, 0.0],
    ])
    assert von_mises_stress([trial_stress(stress, grad_u)])[0] > YIELD_STRESS

    result = update(stress, grad_u, device)
    assert von_mises_stress([result])[0] == pytest.approx(YIELD_STRESS, rel=1e-3)
    # Radial return leaves the pressure alone
    assert np.trace(result) == pytest.approx(np.trace(stress), rel=1e-4)


def test_tensile_mean_stress_is_cut_off(device):
    stress = np.zeros((3, 3))
    grad_u = np.diag([1e-4, 1e-4, 0.0])
    result = update(stress, grad_u, device)
    assert np.trace(result) == pytest.approx(0.0, abs=1e-2)
    assert von_mises_stress([result])[0] <= YIELD_STRESS * (1 + 1e-4)


def test_tension_cutoff_is_idempotent_on_deviatoric_stress(device):
    stress = np.array([
        [100.0, 40.0, 0.0],
        [40.0, -60.0, 0.0],
        [0.0, 0.0, -40.0],
    ])
    once = apply_tension_cutoff([stress], device=device)
    twice = apply_tension_cutoff(once, device=device)
    np.testing.assert_allclose(once[0], stress, atol=1e-5)
    np.testing.assert_array_equal(once, twice)


def test_update_is_deterministic(device, rng):
    stresses = -np.abs(rng.normal(scale=2e3, size=(64, 3, 3)))
    stresses = 0.5 * (stresses + stresses.transpose(0, 2, 1))
    grad_us = rng.normal(scale=1e-3, size=(64, 3, 3))
    grad_us[:, 2, :] = 0.0
    grad_us[:, :, 2] = 0.0

    first = update_stresses(stresses, grad_us, LAME_LAMBDA, SHEAR_MODULUS, YIELD_STRESS, device=device)
    second = update_stresses(stresses, grad_us, LAME_LAMBDA, SHEAR_MODULUS, YIELD_STRESS, device=device)
    np.testing.assert_array_equal(first, second)
    assert np.all(von_mises_stress(first) <= YIELD_STRESS * (1 + 1e-3))


def test_mismatched_batch_sizes_raise(device):
    with pytest.raises(ValueError):
        update_stresses(np.zeros((2, 3, 3)), np.zeros((3, 3, 3)), LAME_LAMBDA, SHEAR_MODULUS, YIELD_STRESS, device=device)


def test_output_fields():
    uniaxial = np.diag([-3.0, 0.0, 0.0])
    assert von_mises_stress([uniaxial])[0] == pytest.approx(3.0)

    shear = np.array([[0.0, 0.1, 0.0], [0.1, 0.0, 0.0], [0.0, 0.0, 0.0]])
    assert deviatoric_strain([shear])[0] == pytest.approx(np.sqrt(2.0 / 3.0 * 0.02))
    assert deviatoric_strain([np.eye(3)])[0] == pytest.approx(0.0)


def test_stress_update_applies_tension_cutoff(device):
    # Elastic, tensile stress with no increment: the update reduces to the cut-off alone
    stress = np.array([
        [300.0, 50.0, 0.0],
        [50.0, 100.0, 0.0],
        [0.0, 0.0, 200.0],
    ])
    result = update(stress, np.zeros((3, 3)), device)
    np.testing.assert_allclose(result, apply_tension_cutoff([stress], device=device)[0], atol=1e-4)
    assert np.trace(result) == pytest.approx(0.0, abs=1e-3)
