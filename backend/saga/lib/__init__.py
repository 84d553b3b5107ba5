"""Small, dependency-light helpers shared by the services."""
