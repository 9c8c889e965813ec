"""pricewatch — keeps a priced item collection fresh with a polite poller."""

__version__ = "0.1.0"
