from ._named_registry import NamedRegistry, OptimizerEntry
from ._operation_registry import OperationRegistry, OperationTable, RegistryEntry
