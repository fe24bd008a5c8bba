"""
CLI entry point, when used as a module: `python -m rollfix`.
"""
from rollfix import cli

if __name__ == '__main__':
    cli.main()
