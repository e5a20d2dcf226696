"""bash2go: shell script to Go transpiler."""

__version__ = "0.1.0"
