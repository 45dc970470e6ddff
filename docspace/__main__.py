"""Module entrypoint for ``python -m docspace``.

All argument parsing and runtime setup happen in ``docspace.cli``.
"""

import sys

from .cli import main


if __name__ == "__main__":
    sys.exit(main())
