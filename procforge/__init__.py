"""Run developer tooling in parallel and supervise long-lived dev processes."""

__version__ = "0.1.0"
