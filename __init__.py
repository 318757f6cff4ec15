"""
bspline_kernel - B样条 / NURBS 曲线曲面几何内核

提供节点向量与基函数、B样条曲线 (普通 / 有理) 的求值与分解、Bezier 段代数、
过点拟合 (任意阶插值与 C2 三次插值) 以及张量积 B样条曲面。
所有点与向量均以 numpy 数组表示。
"""

from .core import (
    BezierCurve3d,
    BezierCurve3dH,
    BSplineCurve3d,
    BSplineCurve3dH,
    BSplineSurface3d,
    BSplineSurface3dH,
    BSplineWrapMode,
    CurveLocationDetail,
    GeometryHandler,
    KnotVector,
    StrokeOptions,
    UVSelect,
    WeightStyle,
    create_through_points,
    create_through_points_c2_cubic,
)
from .interpolation import InterpolationCurve3d, InterpolationCurve3dOptions

__version__ = "0.1.0"
__all__ = [
    "BezierCurve3d",
    "BezierCurve3dH",
    "BSplineCurve3d",
    "BSplineCurve3dH",
    "BSplineSurface3d",
    "BSplineSurface3dH",
    "BSplineWrapMode",
    "CurveLocationDetail",
    "GeometryHandler",
    "InterpolationCurve3d",
    "InterpolationCurve3dOptions",
    "KnotVector",
    "StrokeOptions",
    "UVSelect",
    "WeightStyle",
    "create_through_points",
    "create_through_points_c2_cubic",
]
