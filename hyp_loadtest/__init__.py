"""Load-testing harness for the HYP food-ordering backend."""

__version__ = "1.0.0"
