"""End-to-end launch harness for the Voyager GUI, its gaia daemon and wallet CLI."""

__version__ = "0.1.0"
