"""TermFinder - TF-IDF search over a local document corpus."""

__version__ = "0.1.0"
