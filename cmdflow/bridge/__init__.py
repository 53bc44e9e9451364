"""
Collaborator contracts: the execution engine and the window lookup.
Nothing here executes automation itself.
"""

__all__: list[str] = []
