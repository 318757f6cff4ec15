"""
fit_points - 拟合与求值测试用点集

- open_polyline_points: 平面开放点列 (5 点弦长拟合的代表用例)
- wavy_polyline_points: 7 点起伏点列
- closed_ring_points: 近似圆环的闭合点列 (不含闭合点)
- helix_points: 圆柱螺旋线上的采样点
- cubic_control_polygon: 四个极点的三次控制多边形
"""

import numpy as np

_OPEN_POLYLINE = np.array(
    [
        [0.0, 0.0, 0.0],
        [1.0, 1.0, 0.0],
        [2.5, 1.2, 0.0],
        [4.0, 0.3, 0.0],
        [5.0, 1.5, 0.0],
    ],
    dtype=np.float64,
)

_WAVY_POLYLINE = np.array(
    [
        [0.0, 0.0, 0.0],
        [1.0, 2.0, 0.0],
        [3.0, 3.0, 0.0],
        [4.0, 2.0, 0.0],
        [5.0, 0.0, 0.0],
        [6.0, -1.0, 0.0],
        [7.0, 0.0, 0.0],
    ],
    dtype=np.float64,
)

_CLOSED_RING = np.array(
    [
        [2.0, 0.0, 0.0],
        [1.2, 1.6, 0.0],
        [-0.6, 1.9, 0.0],
        [-2.0, 0.2, 0.0],
        [-1.1, -1.7, 0.0],
        [0.8, -1.8, 0.0],
    ],
    dtype=np.float64,
)

_CUBIC_CONTROL_POLYGON = np.array(
    [
        [0.0, 0.0, 0.0],
        [1.0, 2.0, 0.0],
        [2.0, 2.0, 0.0],
        [3.0, 0.0, 0.0],
    ],
    dtype=np.float64,
)


def open_polyline_points() -> np.ndarray:
    return _OPEN_POLYLINE.copy()


def wavy_polyline_points() -> np.ndarray:
    return _WAVY_POLYLINE.copy()


def closed_ring_points() -> np.ndarray:
    """闭合点列，首点不在末尾重复"""
    return _CLOSED_RING.copy()


def cubic_control_polygon() -> np.ndarray:
    return _CUBIC_CONTROL_POLYGON.copy()


def helix_points(num_points: int = 20, radius: float = 2.0, pitch: float = 1.0, turns: float = 1.5) -> np.ndarray:
    """
    圆柱螺旋线采样。

    Args:
        num_points: 采样点数
        radius: 螺旋半径
        pitch: 每圈上升高度
        turns: 圈数

    Returns:
        (num_points, 3) 采样点
    """
    theta = np.linspace(0.0, 2.0 * np.pi * turns, num_points)
    return np.column_stack([radius * np.cos(theta), radius * np.sin(theta), pitch * theta / (2.0 * np.pi)])
