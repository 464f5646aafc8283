"""CLI entry point: python main.py --tag 1.4.0-ab12cd3 --service orders --registry registry.example.com"""

import sys

from bluegreen.cli import main

if __name__ == "__main__":
    sys.exit(main())
