"""Download social media posts through interchangeable provider APIs."""

__version__ = "0.1.0"
