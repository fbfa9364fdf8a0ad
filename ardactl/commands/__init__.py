"""Sub-commands registered on the ``ardactl`` CLI."""
from . import run, validate

__all__ = ['run', 'validate']
