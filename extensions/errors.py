"""
Error taxonomy for the extension subsystem.

None of these are allowed to abort host startup. The store, loader and
resolver catch them at their boundaries and turn them into log lines,
``failed`` load states or Fallback values.
"""


class ExtensionError(Exception):
    """Base class for extension subsystem errors."""

    pass


class ScanError(ExtensionError):
    """A manifest could not be parsed or is missing a required field."""

    def __init__(self, path, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")


class ManifestRootError(ExtensionError):
    """None of the configured extension roots could be read."""

    def __init__(self, roots):
        self.roots = list(roots)
        joined = ", ".join(str(r) for r in self.roots)
        super().__init__(f"No readable extension root among: {joined}")


class LoadError(ExtensionError):
    """Fetching, executing or reading the contract of extension code failed."""

    pass


class RegistrationError(ExtensionError):
    """A unit offered for registration is malformed."""

    pass


class SchemaError(ExtensionError):
    """A declarative field schema is malformed."""

    pass
