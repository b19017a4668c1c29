"""Extract documentation files from a git repository into a filtered local copy."""

__version__ = "0.1.0"
