"""
Nix Flake Checker

Checks a flake.lock for Nixpkgs inputs that are outdated, pinned to an
unsupported branch, or fetched from a fork.
"""

__version__ = "0.1.0"

from .cli import main

__all__ = ["main"]
