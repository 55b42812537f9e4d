"""Edit excerpts of a file together and sync them back."""

__version__ = "0.1.0"
