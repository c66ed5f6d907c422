"""NoteFinder - local hybrid keyword and vector search for text collections."""

__version__ = "0.1.0"
