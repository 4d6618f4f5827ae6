"""Admission plugin: defaulting and validating webhooks."""

import logging

from .base import PluginBase

logger = logging.getLogger(__name__)


class AdmissionPlugin(PluginBase):
    """Defaults and validates Neo4jEnterpriseCluster specs before they are stored."""

    @property
    def name(self):
        return "admission"

    @property
    def version(self):
        return "1.0.0"

    @property
    def description(self):
        return "Mutating and validating admission webhooks for Neo4j clusters"

    @property
    def models(self):
        from neo4jop.models.cluster import ClusterSpec

        return [ClusterSpec]

    def register_handlers(self):
        logger.info("Registering admission handlers...")
        from neo4jop.handlers import admission_handler  # noqa: F401
