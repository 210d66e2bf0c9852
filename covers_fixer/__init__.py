"""covers-fixer — add missing PHPUnit CoversClass / CoversMethod attributes."""

__version__ = "0.1.0"
