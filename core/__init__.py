"""
core - 核心算法模块

包含:
- knot_vector: 节点向量与基函数
- bspline1d_nd: 打包极点 + 节点的求值与节点插入
- bezier1d_nd / bezier_curve: Bezier 段 (饱和、细分、求根)
- bspline_curve / bspline_curve3dh: 普通与有理 B样条曲线
- bspline_surface: 张量积曲面
- curve_ops: 过点拟合
- curve_primitive: 曲线公共接口
"""

from .bezier_curve import BezierCurve3d, BezierCurve3dH
from .bspline_curve import BSplineCurve3d
from .bspline_curve3dh import BSplineCurve3dH
from .bspline_surface import BSplineSurface3d, BSplineSurface3dH, UVSelect, WeightStyle
from .curve_ops import create_through_points, create_through_points_c2_cubic
from .curve_primitive import CurveLocationDetail, GeometryHandler, StrokeOptions
from .knot_vector import BSplineWrapMode, KnotVector

__all__ = [
    "BezierCurve3d",
    "BezierCurve3dH",
    "BSplineCurve3d",
    "BSplineCurve3dH",
    "BSplineSurface3d",
    "BSplineSurface3dH",
    "UVSelect",
    "WeightStyle",
    "create_through_points",
    "create_through_points_c2_cubic",
    "CurveLocationDetail",
    "GeometryHandler",
    "StrokeOptions",
    "BSplineWrapMode",
    "KnotVector",
]
