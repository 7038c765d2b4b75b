from ._engine import attach_graph, backward
from ._rules import GRADIENT_RULES, register_gradient_rules
