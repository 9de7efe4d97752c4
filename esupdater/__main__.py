"""
CLI entry point, when used as a module: `python -m esupdater`.
"""
from esupdater import cli

if __name__ == '__main__':
    cli.main(prog_name='esupdater')
