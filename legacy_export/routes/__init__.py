"""HTTP routers for the legacy-export service."""
