"""
qoslens - network quality probes

Entry point for running as a module:
    python -m qoslens <target>
"""

from .cli import main

if __name__ == '__main__':
    main()
