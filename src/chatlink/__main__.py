"""Entry point for running chatlink as a module.

This allows running: python -m chatlink
"""

from .cli import main

if __name__ == "__main__":
    # main() is the CLI boundary and owns error reporting and exit codes.
    main()
