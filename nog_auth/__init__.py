"""Command-line tooling for Nog Auth."""
