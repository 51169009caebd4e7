"""Entry point for running upgit via python -m upgit"""

from .cli import main

if __name__ == "__main__":
    main()
