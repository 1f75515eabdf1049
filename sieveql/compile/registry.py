"""Dialect registry (Open/Closed Principle).

``DialectFactory``
    Central registry for :class:`~sieveql.compile.base.Dialect`
    implementations.  Register a dialect once; the renderer and the query
    builder look it up by target name.

Usage::

    from sieveql.compile.registry import DialectFactory

    @DialectFactory.register("cockroach")
    class CockroachDialect(PostgresDialect):
        ...
"""

from __future__ import annotations

from collections.abc import Callable
from typing import ClassVar

from sieveql.compile.base import Dialect
from sieveql.errors import CompilationError


class DialectFactory:
    """Registry mapping dialect target names to :class:`Dialect` classes.

    Example::

        @DialectFactory.register("postgres")
        class PostgresDialect(Dialect):
            ...

        dialect = DialectFactory.create("postgres")
    """

    _dialects: ClassVar[dict[str, type[Dialect]]] = {}

    @classmethod
    def register(cls, name: str) -> Callable[[type[Dialect]], type[Dialect]]:
        """Decorator that registers a dialect class under ``name``.

        Args:
            name: The dialect target name (e.g. ``"postgres"``).

        Returns:
            A decorator that registers and returns the dialect class.
        """

        def decorator(dialect_cls: type[Dialect]) -> type[Dialect]:
            cls._dialects[name] = dialect_cls
            return dialect_cls

        return decorator

    @classmethod
    def register_class(cls, name: str, dialect_cls: type[Dialect]) -> None:
        """Register a dialect class without using the decorator form.

        Args:
            name: The dialect target name.
            dialect_cls: The :class:`Dialect` subclass to register.
        """
        cls._dialects[name] = dialect_cls

    @classmethod
    def create(cls, name: str) -> Dialect:
        """Instantiate the dialect registered for ``name``.

        Args:
            name: The dialect target name.

        Returns:
            A fresh :class:`Dialect` instance.

        Raises:
            CompilationError: If no dialect is registered for ``name``.
        """
        dialect_cls = cls._dialects.get(name)
        if dialect_cls is None:
            raise CompilationError(
                f"Unsupported dialect target: '{name}'. "
                f"Registered targets: {cls.registered_targets()}."
            )
        return dialect_cls()

    @classmethod
    def resolve(cls, dialect: str | Dialect) -> Dialect:
        """Return ``dialect`` itself, or the instance registered under its name."""
        if isinstance(dialect, Dialect):
            return dialect
        return cls.create(dialect)

    @classmethod
    def registered_targets(cls) -> list[str]:
        """Return the sorted list of registered dialect target names."""
        return sorted(cls._dialects)
