"""
Optional dependency management.
"""
from functools import lru_cache
from importlib import import_module
from pathlib import Path
from typing import Callable


# Classes --------------------------------------------------------------------------------------------------------------
class Resources:
    """
    Tracks which optional packages are importable in the running interpreter.

    Attributes:
        package (str): The package name.
        optional_packages (set[str]): The optional packages that were found.
    """
    def __init__(self, *optional_packages: str) -> None:
        self.package = Path(__file__).parent.parent.name
        self.optional_packages = set(filter(self.has_module, optional_packages))

    @staticmethod
    @lru_cache(maxsize=None)
    def has_module(module_name: str) -> bool:
        """Checks if a python package is installed."""
        try:
            import_module(module_name)
            return True
        except ImportError: return False


# Decorators -----------------------------------------------------------------------------------------------------------
def jit(signature_or_function=None, **options) -> Callable:
    """
    Conditional Numba JIT decorator.

    If 'numba' is installed (checked via RESOURCES), this applies `numba.jit`
    with the provided arguments. Otherwise, it returns the original function unmodified,
    ignoring any compilation options.

    Examples:
        >>> @jit  # Bare usage
        ... def func(): ...

        >>> @jit(nopython=True, cache=True)  # Configured usage
        ... def func(): ...
    """
    # 1. Fallback: Numba not installed
    if 'numba' not in RESOURCES.optional_packages:
        if callable(signature_or_function): return signature_or_function  # Handle bare @jit
        def passthrough(func: Callable) -> Callable: return func  # Handle @jit(...)
        return passthrough
    # 2. Apply Numba
    from numba import jit as real_jit
    if callable(signature_or_function): return real_jit(signature_or_function)  # Handle bare @jit
    return real_jit(signature_or_function, **options)  # Handle @jit(...)


# Constants ------------------------------------------------------------------------------------------------------------
RESOURCES = Resources('numba')
