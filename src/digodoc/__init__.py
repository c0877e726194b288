"""Index of the packages, libraries and modules installed in an opam switch."""

__version__ = "0.1.0"
