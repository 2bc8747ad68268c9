"""swarmctl - Docker Swarm cluster bootstrap CLI."""

__version__ = "0.1.0"
