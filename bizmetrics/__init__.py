"""bizmetrics - business metrics computation and self-audit engine."""

__version__ = "0.1.0"
