"""GitLab merge request browsing for a local git checkout."""

from .cli import main

__version__ = "0.1.0"

__all__ = ["__version__", "main"]
