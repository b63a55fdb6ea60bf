"""Client module - HTTP access to the management API and the CLI."""
