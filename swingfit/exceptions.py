class SwingFitError(Exception):
    """Base error for swingfit boundary failures."""


class ConfigError(SwingFitError):
    pass


class CatalogError(SwingFitError):
    pass
