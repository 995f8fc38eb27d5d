"""
Service configurators.

Every module in this package registers one configurator with the
ConfiguratorRegistry when imported.
"""
