"""Application wiring: lifespan and shared components."""
