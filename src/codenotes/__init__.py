"""codenotes - line-anchored notes that follow the code they describe."""

__version__ = "0.1.0"
