import kopf
import logging
import kubernetes

from neo4jop import config
from neo4jop.plugins.registry import PluginRegistry
from neo4jop.crd.generator import CRDManager

logging.basicConfig(
    level=getattr(logging, config.get_log_level()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global plugin registry instance
plugin_registry = None


def load_kube_config():
    try:
        kubernetes.config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except kubernetes.config.ConfigException:
        kubernetes.config.load_kube_config()
        logger.info("Loaded local Kubernetes config")


def configure_admission(settings: kopf.OperatorSettings):
    """Serve the admission webhooks and let kopf manage their configurations."""
    settings.admission.server = kopf.WebhookServer(
        host=config.get_admission_host(),
        port=config.get_admission_port(),
        certfile=config.get_admission_certfile(),
        pkeyfile=config.get_admission_pkeyfile(),
    )
    settings.admission.managed = f"auto.{config.GROUP}"
    logger.info(f"Admission webhooks listening on port {config.get_admission_port()}")


@kopf.on.startup()
def startup_fn(settings: kopf.OperatorSettings, **kwargs):
    """Configure the operator and load its plugins."""
    global plugin_registry

    logger.info("Neo4j operator is starting up...")
    load_kube_config()

    if config.should_manage_crds():
        crd_manager = CRDManager()
        if config.should_generate_crd_files():
            crd_manager.generate_all_crds(force=True)
        if not crd_manager.apply_crds_to_cluster():
            logger.warning("No CRDs were applied to cluster")

    plugin_registry = PluginRegistry()
    enabled = {"upgrades"}
    if config.is_admission_enabled():
        enabled.add("admission")
        configure_admission(settings)

    if plugin_registry.discover_plugins(enabled=enabled) == 0:
        raise RuntimeError("No plugins available")

    init_results = plugin_registry.initialise_all_plugins()
    if not any(init_results.values()):
        raise RuntimeError("Plugin initialization failed")

    plugin_registry.register_all_handlers()

    settings.batching.worker_limit = config.get_worker_limit()
    settings.posting.enabled = config.get_posting_enabled()
    settings.watching.server_timeout = config.get_server_timeout()

    logger.info(f"Initialised plugins: {list(init_results.keys())}")
    logger.info(f"Worker limit: {settings.batching.worker_limit}")
    logger.info("Neo4j operator startup complete")


@kopf.on.cleanup()
def cleanup_fn(**kwargs):
    """Cleanup operator resources."""
    logger.info("Neo4j operator is shutting down...")
    if plugin_registry:
        plugin_registry.shutdown_all_plugins()


def main():
    try:
        kopf.run(clusterwide=True)
    except KeyboardInterrupt:
        logger.info("Operator stopped by user")


if __name__ == "__main__":
    main()
