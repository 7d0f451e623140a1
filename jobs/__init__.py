"""Process entrypoints: scheduler service, HTTP triggers, Dramatiq actors."""
