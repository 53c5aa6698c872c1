"""sqlpeek: read-only SQL validation and table extraction for database browsing."""

from importlib.metadata import version

__version__ = version("sqlpeek")
__all__ = ["__version__"]


def main():
    from sqlpeek.app import main as _main
    _main()
