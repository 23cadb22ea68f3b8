"""csvlinguist: batch translation of CSV localization files."""

__version__ = "0.3.0"
