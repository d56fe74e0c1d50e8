"""Variable dependency ordering using topological sorting."""

from graphlib import CycleError as _GraphlibCycleError
from graphlib import TopologicalSorter


class CycleError(Exception):
    """Raised when variables reference each other in a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Circular variable reference: {' -> '.join(cycle)}")


def resolve_variable_order(dependencies: dict[str, set[str]]) -> list[str]:
    """Resolve the evaluation order of variables.

    Args:
        dependencies: Map of variable name to the variable names its value references

    Returns:
        Variable names in evaluation order (dependencies first). Names with no
        ordering constraint keep their declaration order.

    Raises:
        CycleError: If a dependency cycle is detected
    """
    sorter = TopologicalSorter()
    for name, deps in dependencies.items():
        sorter.add(name, *sorted(deps))

    position = {name: index for index, name in enumerate(dependencies)}
    try:
        sorter.prepare()
    except _GraphlibCycleError as e:
        raise CycleError(list(e.args[1]))

    order = []
    while sorter.is_active():
        ready = sorted(sorter.get_ready(), key=lambda n: position.get(n, len(position)))
        order.extend(ready)
        sorter.done(*ready)
    return order
