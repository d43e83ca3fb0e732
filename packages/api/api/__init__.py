"""HTTP surface of the portfolio assistant."""
