"""
Output formatters for qoslens
"""

from .console import ConsoleOutput

__all__ = ['ConsoleOutput']
