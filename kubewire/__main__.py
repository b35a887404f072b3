"""
CLI entry point, when used as a module: `python -m kubewire`.

Useful for debugging in the IDEs (use the start-mode "Module", module "kubewire").
"""
from kubewire import cli

if __name__ == '__main__':
    cli.main()
