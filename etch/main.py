# etch/main.py
"""Console-script entry point for the etch CLI."""
from etch.cli.interface import main_cli_group


def entrypoint():
    main_cli_group(prog_name="etch")

if __name__ == '__main__':
    entrypoint()
