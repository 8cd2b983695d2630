from .menu import main

__all__ = ["main"]
