"""HTTP routes and wire schemas for the board API."""
