import numpy as np
import warp as wp


@wp.func
def symmetric(a: wp.mat33) -> wp.mat33:
    return 0.5 * (a + wp.transpose(a))

@wp.func
def skew(a: wp.mat33) -> wp.mat33:
    return 0.5 * (a - wp.transpose(a))

@wp.func
def deviatoric(a: wp.mat33) -> wp.mat33:
    return a - (wp.trace(a) / 3.0) * wp.identity(3, dtype=wp.float32)

@wp.func
def von_mises(stress: wp.mat33) -> float:
    s = deviatoric(stress)
    return wp.sqrt(1.5 * wp.ddot(s, s))

@wp.func
def elastic_contract(a: wp.mat33, lame_lambda: float, shear_modulus: float) -> wp.mat33:
    """
    Isotropic stiffness applied to a second-order tensor, c^e : a with
    c^e = lambda (delta x delta) + 2G I_sym.
    """
    return lame_lambda * wp.trace(a) * wp.identity(3, dtype=wp.float32) + 2.0 * shear_modulus * symmetric(a)

@wp.func
def tension_cutoff(stress: wp.mat33) -> wp.mat33:
    # Cohesionless: no tensile mean stress
    if wp.trace(stress) / 3.0 > 0.0:
        return deviatoric(stress)
    return stress

@wp.func
def vonmises_model(
    stress: wp.mat33,
    grad_u: wp.mat33,
    lame_lambda: float,
    shear_modulus: float,
    yield_stress: float) -> wp.mat33:
    """
    Stress update for one increment of displacement gradient.

    Elastic predictor with the Jaumann co-rotational term, one-step radial
    return onto the von Mises surface, then a tension cut-off that drops the
    mean stress whenever it is tensile.

    Args:
        stress: Cauchy stress at the start of the increment.
        grad_u: Incremental displacement gradient dt * grad(v), 3x3.
        lame_lambda, shear_modulus: Elastic constants.
        yield_stress: Uniaxial yield stress.

    Returns:
        Updated Cauchy stress.
    """
    trial = (
        stress
        + elastic_contract(symmetric(grad_u), lame_lambda, shear_modulus)
        + 2.0 * symmetric(stress @ skew(grad_u))
    )

    q = von_mises(trial)
    f_trial = q - yield_stress

    result = trial
    if f_trial > 0.0:
        dfdsigma = (1.5 / q) * deviatoric(trial)
        dlambda = f_trial / wp.ddot(dfdsigma, elastic_contract(dfdsigma, lame_lambda, shear_modulus))
        result = trial - elastic_contract(dlambda * dfdsigma, lame_lambda, shear_modulus)

    return tension_cutoff(result)


@wp.kernel
def update_stress_kernel(
    stresses: wp.array(dtype=wp.mat33),
    grad_us: wp.array(dtype=wp.mat33),
    lame_lambda: float,
    shear_modulus: float,
    yield_stress: float,
    new_stresses: wp.array(dtype=wp.mat33)):

    tid = wp.tid()
    new_stresses[tid] = vonmises_model(stresses[tid], grad_us[tid], lame_lambda, shear_modulus, yield_stress)

@wp.kernel
def tension_cutoff_kernel(
    stresses: wp.array(dtype=wp.mat33),
    new_stresses: wp.array(dtype=wp.mat33)):

    tid = wp.tid()
    new_stresses[tid] = tension_cutoff(stresses[tid])


def update_stresses(stresses, grad_us, lame_lambda, shear_modulus, yield_stress, device=None):
    """
    Batched host entry point for the stress update.

    ``stresses`` and ``grad_us`` are (n, 3, 3) array-likes; returns a new
    (n, 3, 3) float32 NumPy array. Inputs are left untouched.
    """
    stresses_np = np.asarray(stresses, dtype=np.float32).reshape(-1, 3, 3)
    grad_us_np = np.asarray(grad_us, dtype=np.float32).reshape(-1, 3, 3)
    if stresses_np.shape != grad_us_np.shape:
        raise ValueError("stresses and grad_us must have the same number of tensors.")

    n = stresses_np.shape[0]
    stresses_wp = wp.array(stresses_np, dtype=wp.mat33, device=device)
    grad_us_wp = wp.array(grad_us_np, dtype=wp.mat33, device=device)
    result = wp.zeros(n, dtype=wp.mat33, device=device)

    wp.launch(
        kernel=update_stress_kernel,
        dim=n,
        inputs=[stresses_wp, grad_us_wp, lame_lambda, shear_modulus, yield_stress, result],
        device=device,
    )
    return result.numpy()

def apply_tension_cutoff(stresses, device=None):
    stresses_np = np.asarray(stresses, dtype=np.float32).reshape(-1, 3, 3)
    n = stresses_np.shape[0]
    stresses_wp = wp.array(stresses_np, dtype=wp.mat33, device=device)
    result = wp.zeros(n, dtype=wp.mat33, device=device)
    wp.launch(kernel=tension_cutoff_kernel, dim=n, inputs=[stresses_wp, result], device=device)
    return result.numpy()


def von_mises_stress(stresses):
    """von Mises equivalent stress of (n, 3, 3) stresses, NumPy on the host."""
    s = np.asarray(stresses, dtype=np.float64).reshape(-1, 3, 3)
    dev = s - np.trace(s, axis1=1, axis2=2)[:, None, None] / 3.0 * np.eye(3)
    return np.sqrt(1.5 * np.einsum("nij,nij->n", dev, dev))

def deviatoric_strain(strains):
    """Equivalent deviatoric strain sqrt(2/3 dev(e):dev(e)) of (n, 3, 3) strains."""
    e = np.asarray(strains, dtype=np.float64).reshape(-1, 3, 3)
    dev = e - np.trace(e, axis1=1, axis2=2)[:, None, None] / 3.0 * np.eye(3)
    return np.sqrt(2.0 / 3.0 * np.einsum("nij,nij->n", dev, dev))
