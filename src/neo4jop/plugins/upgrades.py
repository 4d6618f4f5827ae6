"""Upgrades plugin: rolling upgrade reconciliation."""

import logging

from .base import PluginBase

logger = logging.getLogger(__name__)


class UpgradesPlugin(PluginBase):
    """Rolls image changes through a cluster one member at a time."""

    @property
    def name(self):
        return "upgrades"

    @property
    def version(self):
        return "1.0.0"

    @property
    def description(self):
        return "Rolling upgrades with membership confirmation for Neo4j clusters"

    @property
    def models(self):
        from neo4jop.models.cluster import ClusterSpec

        return [ClusterSpec]

    def register_handlers(self):
        logger.info("Registering upgrade handlers...")
        from neo4jop.handlers import cluster_handler  # noqa: F401
