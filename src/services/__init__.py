"""Application services shared by the API and the CLI (email delivery)."""
