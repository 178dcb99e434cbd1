"""codetutor: AI programming tutor with an adaptive curriculum."""

__version__ = "0.1.0"
