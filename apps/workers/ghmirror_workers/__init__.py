"""ghmirror_workers - job entrypoints for the mirror."""
