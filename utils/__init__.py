"""
utils - 工具函数模块

包含:
- geometry: 容差比较、包围盒、平面、仿射变换
- integrals: 自适应数值积分 (弧长)
- bezier_polynomials: Bernstein 多项式代数与求根
"""

from .geometry import (
    Plane3d,
    Range3d,
    conditional_divide_fraction,
    is_almost_equal_number,
    is_same_point,
    normalize,
)
from .integrals import adaptive_quadrature, arc_length_integral, gauss_legendre, simpson
from .bezier_polynomials import UnivariateBezier, bernstein_product, bernstein_roots_01

__all__ = [
    "Plane3d",
    "Range3d",
    "conditional_divide_fraction",
    "is_almost_equal_number",
    "is_same_point",
    "normalize",
    "adaptive_quadrature",
    "arc_length_integral",
    "gauss_legendre",
    "simpson",
    "UnivariateBezier",
    "bernstein_product",
    "bernstein_roots_01",
]
