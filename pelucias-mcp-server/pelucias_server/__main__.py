"""Allow running with python -m pelucias_server."""

from .cli import main

main()
