"""Allow ``python -m planetmap``."""

from .cli import main

main()
