"""
datasets - 测试数据集

包含:
- nurbs_circle: 精确有理二次圆
- fit_points: 拟合用点集与控制多边形
"""

from .fit_points import (
    closed_ring_points,
    cubic_control_polygon,
    helix_points,
    open_polyline_points,
    wavy_polyline_points,
)
from .nurbs_circle import NurbsCircle, nurbs_circle

__all__ = [
    "NurbsCircle",
    "nurbs_circle",
    "closed_ring_points",
    "cubic_control_polygon",
    "helix_points",
    "open_polyline_points",
    "wavy_polyline_points",
]
