import sys

from joara_scrap.cli import run

if __name__ == "__main__":
    sys.exit(run())
