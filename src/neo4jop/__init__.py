"""Neo4j Enterprise cluster operator: admission gate and rolling upgrades."""

__version__ = "0.1.0"
