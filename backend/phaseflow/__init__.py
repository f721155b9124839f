"""phaseflow — phase sequencing engine for submission packages."""

__version__ = "0.1.0"
