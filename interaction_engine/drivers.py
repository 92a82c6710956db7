"""Resolution of ``module:function`` callbacks named by descriptor files."""

from __future__ import annotations

import importlib
import sys
from pathlib import Path
from types import ModuleType
from typing import Callable, Optional

from .errors import ConfigError


class DriverRegistry:
    """Caches driver callables, importing modules relative to a descriptor directory."""

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self.base_dir = base_dir
        self._cache: dict[str, Callable] = {}
        self._modules: dict[str, ModuleType] = {}
        self._path_added = False

    def resolve(self, reference: str) -> Callable:
        if reference in self._cache:
            return self._cache[reference]

        module_name, sep, function_name = reference.partition(":")
        if not sep or not module_name or not function_name:
            raise ConfigError(f"Driver reference must use module:function format, got {reference!r}")

        self._ensure_path()
        module = self._modules.get(module_name)
        if module is None:
            try:
                module = importlib.import_module(module_name)
            except ImportError as exc:
                raise ConfigError(f"Driver module {module_name} could not be imported: {exc}") from exc
            self._modules[module_name] = module
        func = getattr(module, function_name, None)
        if not callable(func):
            raise ConfigError(f"Driver function {function_name} not found in {module_name}")
        self._cache[reference] = func
        return func

    def _ensure_path(self) -> None:
        if self._path_added or self.base_dir is None:
            return
        base_str = str(self.base_dir)
        if base_str not in sys.path:
            sys.path.insert(0, base_str)
        self._path_added = True
