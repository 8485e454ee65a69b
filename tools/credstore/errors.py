"""Exception hierarchy for the credential store.

Only exceptional conditions are raised. Expected outcomes such as a
duplicate user or a missing record are reported through return values.
"""


class CredentialStoreError(Exception):
    """Base class for all credential store errors."""


class ConfigError(CredentialStoreError):
    """Invalid or incomplete store configuration."""


class ConnectionError(CredentialStoreError):
    """The database connection could not be opened or was lost."""


class SchemaError(CredentialStoreError):
    """The credential table is missing or could not be created."""


class DriverError(CredentialStoreError):
    """Any other failure reported by the database driver."""


class ConstraintViolation(DriverError):
    """A uniqueness constraint rejected the statement."""
