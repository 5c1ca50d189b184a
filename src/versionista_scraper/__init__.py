"""Paced, retrying HTTP client for scraping Versionista."""

__version__ = "0.1.0"
