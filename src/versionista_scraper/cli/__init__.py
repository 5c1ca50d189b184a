"""Command-line interface for the Versionista scraper."""
