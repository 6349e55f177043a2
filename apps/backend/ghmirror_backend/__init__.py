"""ghmirror_backend - GitHub and ZenHub mirror sync engine."""
