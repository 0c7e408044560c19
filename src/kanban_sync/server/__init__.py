"""HTTP application: app factory and authentication."""
