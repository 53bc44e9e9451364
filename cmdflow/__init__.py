"""
cmdflow: workflow graph engine for desktop automation flows.
Lightweight package init; import submodules directly.
"""

__version__ = "0.1.0"

__all__: list[str] = ["__version__"]
