"""QHSLab claims batch bot: drives the QHSLab claims listing from a spreadsheet."""

__version__ = "1.0.0"
