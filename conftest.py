"""Pytest configuration for the multibody package.

Registers the src directory as the 'multibody' package, so the test suite
runs from a fresh checkout without installing it first.
"""

import importlib.util
import sys
from pathlib import Path

SRC_DIR = Path(__file__).parent / "src"


def _load_package(name: str, src_dir: Path) -> None:
    for key in [k for k in sys.modules if k == name or k.startswith(name + ".")]:
        del sys.modules[key]
    module_spec = importlib.util.spec_from_file_location(
        name, src_dir / "__init__.py", submodule_search_locations=[str(src_dir)])
    package = importlib.util.module_from_spec(module_spec)
    sys.modules[name] = package
    module_spec.loader.exec_module(package)


_load_package("multibody", SRC_DIR)
