"""
Package entry point.

Allows running the application via:

    python -m untiscal

This simply forwards execution to untiscal.cli.main().
"""

from untiscal.cli import main

if __name__ == "__main__":
    main()
