# src/protofixture/errors.py
"""Exceptions raised by the prototype factory.

Engine errors (sqlite3.Error, SQLAlchemyError) and exceptions raised by
user hooks are never wrapped on the call that hit them. The classes here
cover failures that belong to the factory itself.
"""


class ProtofixtureError(Exception):
    """Base class for all protofixture errors."""

    pass


class FactoryConfigurationError(ProtofixtureError):
    """Raised when the factory cannot construct handles with what it was given.

    The message names the callable shape that was expected, e.g. a
    handle factory of the form ``(Engine, HandleOptions) -> Session``.
    """

    pass


class MissingConnectionError(ProtofixtureError, ValueError):
    """Raised when an explicit connection argument is absent or not a SQLite connection.

    Checked synchronously before any I/O.
    """

    pass


class PrototypeBuildError(ProtofixtureError):
    """Raised when a factory whose prototype build already failed is used again.

    The original failure is attached as ``__cause__``. The build is never
    re-attempted on the same factory.
    """

    pass


class FactoryDisposedError(ProtofixtureError):
    """Raised when a disposed factory is asked for a new database."""

    pass
