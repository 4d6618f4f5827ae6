"""Base plugin architecture for the neo4jop operator."""

from abc import ABC, abstractmethod
import logging

logger = logging.getLogger(__name__)


class PluginBase(ABC):
    """Base class for all operator plugins."""

    def __init__(self):
        self._initialised = False

    @property
    @abstractmethod
    def name(self):
        """Unique name for this plugin."""
        pass

    @property
    @abstractmethod
    def version(self):
        pass

    @property
    @abstractmethod
    def description(self):
        pass

    @property
    def models(self):
        """CRD models this plugin provides."""
        return []

    def initialise(self):
        """Initialise the plugin. Called once during operator startup.

        Returns:
            bool: True if initialisation successful, False otherwise
        """
        if self._initialised:
            logger.warning(f"Plugin {self.name} already initialised")
            return True

        try:
            logger.info(f"Initialising plugin: {self.name} v{self.version}")
            for model in self.models:
                if not hasattr(model, "_crd_group"):
                    logger.warning(
                        f"Model {model.__name__} not decorated with @CRDRegistry.register"
                    )
            self._initialise_plugin()
            self._initialised = True
            return True

        except Exception as e:
            logger.error(f"Failed to initialise plugin {self.name}: {e}")
            return False

    @property
    def initialised(self):
        return self._initialised

    def _initialise_plugin(self):
        """Override this method for custom plugin initialization logic."""
        pass

    def shutdown(self):
        """Cleanup plugin resources. Called during operator shutdown."""
        if not self._initialised:
            return
        logger.info(f"Shutting down plugin: {self.name}")
        self._initialised = False

    @abstractmethod
    def register_handlers(self):
        """Import the modules holding this plugin's kopf handlers."""
        pass

    def get_metadata(self):
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "models": [model.__name__ for model in self.models],
            "initialised": self._initialised,
        }
