"""Allow running as ``python -m sitewatch``."""

from . import main

main()
