"""HTTP API for codetutor."""
