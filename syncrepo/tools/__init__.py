"""Command line tools for SyncRepo."""
