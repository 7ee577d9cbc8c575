"""drwebguard: Malice Dr.WEB AntiVirus plugin."""

__version__ = "0.1.0"
