"""
Entry point for ``python -m gemfuse``; same commands as the ``gemfuse``
console script.
"""

from gemfuse.cli import main

if __name__ == "__main__":
    main()
