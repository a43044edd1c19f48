"""Entry point for running gemfinder as a module.

Usage:
    python -m gemfinder [command] [options]
"""

from gemfinder.cli import main

if __name__ == "__main__":
    main()
