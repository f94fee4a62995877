"""EQ Coach: practice difficult conversations and get scored, rewritten feedback."""

__version__ = "0.1.0"
