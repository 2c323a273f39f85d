"""Joara book scraper: chapters to .txt and .epub."""

__version__ = "0.3.0"
