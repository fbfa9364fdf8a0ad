"""
Cluster run modules.
"""
from .ssh import CommandResult, SSHClient

__all__ = [
    'CommandResult',
    'SSHClient',
]
