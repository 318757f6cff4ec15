"""
config - 数值容差与默认参数

几何内核中所有比较、步数估计所用的常量集中在此处。
"""

# 节点比较容差
KNOT_TOLERANCE = 1e-9

# 坐标/距离比较容差 (米级模型的"微小距离")
SMALL_METRIC_DISTANCE = 1e-6

# 相对数值比较容差
SMALL_FLOAT_RELATIVE = 1e-12

# 安全除法: |分母| * LARGE_FRACTION_RESULT 必须大于 |分子|
LARGE_FRACTION_RESULT = 1e10

# 二阶导数中心差分步长
DERIVATIVE_EPSILON = 1e-8

# 单位权重判定容差
UNIT_WEIGHT_TOLERANCE = 1e-12

# 离散化: 未给出选项时的默认角度步长, 以及单段最大步数
DEFAULT_STROKE_ANGLE_RADIANS = 0.1
MAX_STROKE_COUNT = 101

# 多项式求根时视为实根的虚部上限
ROOT_IMAGINARY_TOLERANCE = 1e-8

# 三次拟合默认阶数
DEFAULT_FIT_ORDER = 4
