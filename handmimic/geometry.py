"""Vector and quaternion helpers.

Quaternions are numpy arrays in ``[w, x, y, z]`` order (MuJoCo convention).
"""

import numpy as np

from .landmarks import EPS

IDENTITY_QUAT = np.array([1.0, 0.0, 0.0, 0.0])

_CARDINAL_AXES = (np.array([1.0, 0.0, 0.0]), np.array([0.0, 1.0, 0.0]), np.array([0.0, 0.0, 1.0]))


def normalize(v: np.ndarray) -> np.ndarray:
    """Normalize a vector; near-zero vectors are returned as zeros."""
    v = np.asarray(v, dtype=float)
    norm = np.linalg.norm(v)
    if norm < EPS:
        return np.zeros_like(v)
    return v / norm


def any_perpendicular(v: np.ndarray) -> np.ndarray:
    """Unit vector perpendicular to ``v`` (picked from the least aligned cardinal axis)."""
    v = normalize(v)
    if not np.any(v):
        return _CARDINAL_AXES[0].copy()
    candidate = _CARDINAL_AXES[int(np.argmin(np.abs(v)))]
    return normalize(np.cross(v, candidate))


def safe_cross(a: np.ndarray, b: np.ndarray, *fallbacks: np.ndarray) -> np.ndarray:
    """Normalized ``a x b``, retrying with each fallback in place of ``b`` when degenerate.

    Never returns a zero or non-finite vector.
    """
    for other in (b, *fallbacks):
        cross = np.cross(a, other)
        norm = np.linalg.norm(cross)
        if norm > EPS and np.isfinite(norm):
            return cross / norm
    return any_perpendicular(a)


def angle_between(v1: np.ndarray, v2: np.ndarray) -> float:
    """Unsigned angle between two vectors in radians."""
    n1 = np.linalg.norm(v1)
    n2 = np.linalg.norm(v2)
    if n1 < EPS or n2 < EPS:
        return 0.0
    cos_angle = np.clip(np.dot(v1, v2) / (n1 * n2), -1.0, 1.0)
    return float(np.arccos(cos_angle))


def signed_angle_in_plane(v1: np.ndarray, v2: np.ndarray, normal: np.ndarray) -> float:
    """Signed angle from ``v1`` to ``v2`` around ``normal``."""
    n = normalize(normal)
    cross = np.cross(v1, v2)
    return float(np.arctan2(np.dot(cross, n), np.dot(v1, v2)))


def project_onto_plane(v: np.ndarray, normal: np.ndarray) -> np.ndarray:
    n = normalize(normal)
    return np.asarray(v, dtype=float) - np.dot(v, n) * n


# --- quaternions -----------------------------------------------------------


def quat_normalize(q: np.ndarray) -> np.ndarray:
    q = np.asarray(q, dtype=float)
    norm = np.linalg.norm(q)
    if norm < EPS or not np.isfinite(norm):
        return IDENTITY_QUAT.copy()
    return q / norm


def quat_multiply(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Hamilton product ``a * b``."""
    w1, x1, y1, z1 = a
    w2, x2, y2, z2 = b
    return np.array(
        [
            w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
            w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
            w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
            w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
        ]
    )


def quat_conjugate(q: np.ndarray) -> np.ndarray:
    return np.array([q[0], -q[1], -q[2], -q[3]])


def quat_from_axis_angle(axis: np.ndarray, angle: float) -> np.ndarray:
    n = normalize(axis)
    half = 0.5 * angle
    return np.array([np.cos(half), *(n * np.sin(half))])


def quat_rotate(q: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Rotate vector ``v`` by unit quaternion ``q``."""
    return quat_to_matrix(q) @ np.asarray(v, dtype=float)


def quat_angle_to(a: np.ndarray, b: np.ndarray) -> float:
    """Angular distance between two rotations in radians."""
    dot = abs(float(np.dot(quat_normalize(a), quat_normalize(b))))
    return 2.0 * float(np.arccos(min(1.0, dot)))


def quat_slerp(a: np.ndarray, b: np.ndarray, t: float) -> np.ndarray:
    """Spherical linear interpolation from ``a`` (t=0) to ``b`` (t=1) along the short arc."""
    a = quat_normalize(a)
    b = quat_normalize(b)
    dot = float(np.dot(a, b))
    if dot < 0.0:
        b = -b
        dot = -dot
    if dot > 0.9995:
        return quat_normalize(a + t * (b - a))
    theta = np.arccos(np.clip(dot, -1.0, 1.0))
    sin_theta = np.sin(theta)
    return (np.sin((1.0 - t) * theta) * a + np.sin(t * theta) * b) / sin_theta


def quat_to_matrix(q: np.ndarray) -> np.ndarray:
    w, x, y, z = quat_normalize(q)
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
            [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
            [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
        ]
    )


def matrix_to_quat(m: np.ndarray) -> np.ndarray:
    """Convert a rotation matrix to a unit quaternion (Shepperd's method)."""
    m = np.asarray(m, dtype=float)
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    if trace > 0:
        s = 0.5 / np.sqrt(trace + 1.0)
        q = [0.25 / s, (m[2, 1] - m[1, 2]) * s, (m[0, 2] - m[2, 0]) * s, (m[1, 0] - m[0, 1]) * s]
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = 2.0 * np.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2])
        q = [(m[2, 1] - m[1, 2]) / s, 0.25 * s, (m[0, 1] + m[1, 0]) / s, (m[0, 2] + m[2, 0]) / s]
    elif m[1, 1] > m[2, 2]:
        s = 2.0 * np.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2])
        q = [(m[0, 2] - m[2, 0]) / s, (m[0, 1] + m[1, 0]) / s, 0.25 * s, (m[1, 2] + m[2, 1]) / s]
    else:
        s = 2.0 * np.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1])
        q = [(m[1, 0] - m[0, 1]) / s, (m[0, 2] + m[2, 0]) / s, (m[1, 2] + m[2, 1]) / s, 0.25 * s]
    return quat_normalize(np.array(q))


def basis_to_quat(x_axis: np.ndarray, y_axis: np.ndarray, z_axis: np.ndarray) -> np.ndarray:
    """Quaternion of the rotation whose matrix columns are the given basis vectors."""
    return matrix_to_quat(np.column_stack([x_axis, y_axis, z_axis]))


def rpy_to_matrix(rpy: np.ndarray) -> np.ndarray:
    """URDF roll-pitch-yaw (fixed-axis XYZ) to rotation matrix: ``Rz(yaw) @ Ry(pitch) @ Rx(roll)``."""
    roll, pitch, yaw = rpy
    cr, sr = np.cos(roll), np.sin(roll)
    cp, sp = np.cos(pitch), np.sin(pitch)
    cy, sy = np.cos(yaw), np.sin(yaw)
    rx = np.array([[1, 0, 0], [0, cr, -sr], [0, sr, cr]])
    ry = np.array([[cp, 0, sp], [0, 1, 0], [-sp, 0, cp]])
    rz = np.array([[cy, -sy, 0], [sy, cy, 0], [0, 0, 1]])
    return rz @ ry @ rx


def rpy_to_quat(rpy: np.ndarray) -> np.ndarray:
    return matrix_to_quat(rpy_to_matrix(rpy))


def euler_xyz_from_matrix(m: np.ndarray) -> tuple[float, float, float]:
    """Intrinsic XYZ Euler angles of a rotation matrix (``R = Rx @ Ry @ Rz``)."""
    m13 = float(np.clip(m[0, 2], -1.0, 1.0))
    y = float(np.arcsin(m13))
    if abs(m13) < 0.9999999:
        x = float(np.arctan2(-m[1, 2], m[2, 2]))
        z = float(np.arctan2(-m[0, 1], m[0, 0]))
    else:
        x = float(np.arctan2(m[2, 1], m[1, 1]))
        z = 0.0
    return x, y, z


def matrix_to_rpy(m: np.ndarray) -> np.ndarray:
    """Inverse of :func:`rpy_to_matrix`, returning ``[roll, pitch, yaw]``."""
    m = np.asarray(m, dtype=float)
    pitch = float(np.arcsin(np.clip(-m[2, 0], -1.0, 1.0)))
    if abs(m[2, 0]) < 0.9999999:
        roll = float(np.arctan2(m[2, 1], m[2, 2]))
        yaw = float(np.arctan2(m[1, 0], m[0, 0]))
    else:
        roll = float(np.arctan2(-m[1, 2], m[1, 1]))
        yaw = 0.0
    return np.array([roll, pitch, yaw])
