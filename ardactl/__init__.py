"""ardactl: run metagenomic classification across a cluster of nodes."""

__version__ = "0.1.0"
