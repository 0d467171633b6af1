"""CLI entrypoint: ``python main.py run cases.json`` (same as the ``spectra`` script)."""
import sys

from spectra.cli import main

if __name__ == "__main__":
    sys.exit(main())
