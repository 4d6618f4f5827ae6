"""CRD Registry system for automatic CRD discovery."""

import importlib
import pkgutil
import logging

logger = logging.getLogger(__name__)


class CRDRegistry:
    """Global registry for CRD models with auto-discovery."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._models = {}
        return cls._instance

    @classmethod
    def register(
        cls,
        group,
        version,
        kind,
        plural=None,
        scope="Namespaced",
        status=None,
        short_names=None,
        printer_columns=None,
    ):
        """Decorator to register CRD spec models.

        Args:
            group: API group (e.g., 'neo4j.neo4j.com')
            version: API version (e.g., 'v1alpha1')
            kind: Kind name (e.g., 'Neo4jEnterpriseCluster')
            plural: Plural name (defaults to kind.lower() + 's')
            scope: 'Namespaced' or 'Cluster'
            status: Optional pydantic model describing the status subresource
            short_names: kubectl short names
            printer_columns: additionalPrinterColumns for kubectl get
        """

        def decorator(model_class):
            if not hasattr(model_class, "__annotations__"):
                raise ValueError(
                    f"CRD model {model_class.__name__} must have type annotations"
                )

            model_class._crd_group = group
            model_class._crd_version = version
            model_class._crd_kind = kind
            model_class._crd_plural = plural or f"{kind.lower()}s"
            model_class._crd_scope = scope

            key = f"{group}/{version}/{kind}"
            cls()._models[key] = {
                "model": model_class,
                "status": status,
                "group": group,
                "version": version,
                "kind": kind,
                "plural": model_class._crd_plural,
                "scope": scope,
                "singular": kind.lower(),
                "short_names": short_names or [],
                "printer_columns": printer_columns or [],
            }

            logger.debug(f"Registered CRD: {key}")
            return model_class

        return decorator

    def discover_models(self, package_paths=None):
        """Auto-discover all CRD models in specified packages.

        Args:
            package_paths: List of package paths to search (e.g., ['neo4jop.models'])
        """
        if package_paths is None:
            package_paths = ["neo4jop.models"]

        for package_path in package_paths:
            self._discover_in_package(package_path)

    def _discover_in_package(self, package_path):
        """Import every submodule of a package so its decorators run."""
        try:
            package = importlib.import_module(package_path)
        except ImportError:
            logger.warning(f"Package {package_path} not found")
            return

        if hasattr(package, "__path__"):
            for _, module_name, _ in pkgutil.iter_modules(package.__path__):
                full_module_name = f"{package_path}.{module_name}"
                try:
                    importlib.import_module(full_module_name)
                    logger.debug(f"Discovered models in {full_module_name}")
                except ImportError as e:
                    logger.warning(f"Could not import {full_module_name}: {e}")

    def get_all_models(self):
        """Get all registered CRD models."""
        return self._models.copy()
