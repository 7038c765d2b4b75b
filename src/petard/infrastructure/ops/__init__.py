from ._reference import ReferenceOperations
from ._shape_utils import broadcast_shape, sum_to_shape
