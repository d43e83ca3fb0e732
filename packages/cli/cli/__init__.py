"""Terminal client for the portfolio assistant."""
