"""Plugin registry for discovering and managing plugins."""

import importlib
import logging

from .base import PluginBase

logger = logging.getLogger(__name__)

BUILTIN_PLUGINS = [
    "neo4jop.plugins.admission",
    "neo4jop.plugins.upgrades",
]


class PluginRegistry:
    """Registry for discovering and managing operator plugins."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._plugins = {}
        return cls._instance

    def discover_plugins(self, enabled=None):
        """Load the built-in plugins.

        Args:
            enabled: optional collection of plugin names to keep

        Returns:
            int: Number of plugins discovered
        """
        logger.info("Discovering plugins...")

        loaded_count = 0
        for plugin_module in BUILTIN_PLUGINS:
            try:
                module = importlib.import_module(plugin_module)
            except ImportError as e:
                logger.warning(f"Could not load builtin plugin {plugin_module}: {e}")
                continue

            for attr_name in dir(module):
                attr = getattr(module, attr_name)
                if isinstance(attr, type) and issubclass(attr, PluginBase) and attr is not PluginBase:
                    plugin = attr()
                    if enabled is not None and plugin.name not in enabled:
                        logger.info(f"Plugin {plugin.name} disabled")
                        break
                    if self.register_plugin(plugin):
                        loaded_count += 1
                    break

        logger.info(f"Discovered {loaded_count} plugins")
        return loaded_count

    def register_plugin(self, plugin):
        """Register a plugin instance.

        Returns:
            bool: True if registration successful, False otherwise
        """
        if not isinstance(plugin, PluginBase):
            logger.error(f"Plugin must inherit from PluginBase: {type(plugin)}")
            return False

        if plugin.name in self._plugins:
            logger.warning(f"Plugin {plugin.name} already registered")
            return False

        self._plugins[plugin.name] = plugin
        logger.debug(f"Registered plugin: {plugin.name} v{plugin.version}")
        return True

    def initialise_all_plugins(self):
        """Initialise all registered plugins.

        Returns:
            Dict[str, bool]: Map of plugin names to initialization success status
        """
        results = {name: plugin.initialise() for name, plugin in self._plugins.items()}
        successful_count = sum(1 for success in results.values() if success)
        logger.info(f"Initialised {successful_count}/{len(self._plugins)} plugins successfully")
        return results

    def register_all_handlers(self):
        """Register kopf handlers for all initialised plugins."""
        for plugin_name, plugin in self._plugins.items():
            if not plugin.initialised:
                logger.warning(
                    f"Skipping handler registration for uninitialised plugin: {plugin_name}"
                )
                continue
            plugin.register_handlers()
            logger.debug(f"Registered handlers for plugin: {plugin_name}")

    def shutdown_all_plugins(self):
        for plugin in self._plugins.values():
            plugin.shutdown()

    def get_plugin(self, name):
        return self._plugins.get(name)

    def list_plugin_names(self):
        return list(self._plugins.keys())

    def clear(self):
        """Forget all registered plugins."""
        self._plugins = {}
