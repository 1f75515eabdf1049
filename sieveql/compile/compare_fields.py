"""Parameter compiler: search objects → fragments + bound values.

``compare_fields`` walks a search object in insertion order and emits one
:class:`~sieveql.schema.search.Fragment` per comparison, pushing the
comparison's bound value(s) onto a single shared list in the same order.
No SQL text is produced here and no placeholder cursor is touched; that is
the renderer's job, which keeps compilation dialect-agnostic.

Entry shapes
------------
``None``                     → ``IS NULL`` (no value)
scalar                       → equality (one value)
``{"$op": v, ...}``          → one fragment per key, in key order
``[{"$op": v}, {"$op": w}]`` → every operator-object in list order, ANDed
``UNSET``                    → entry skipped
"""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from sieveql.errors import OperatorValueError, OrGroupError
from sieveql.schema.operators import Operator, resolve_search_key
from sieveql.schema.search import UNSET, CompiledGroup, Fragment, OrAlternative

#: A caller-supplied search object.
SearchParams = Mapping[str, Any]

_LIST_TYPES = (list, tuple)


def compare_fields(
    params: SearchParams | None = None,
    params_or: Sequence[SearchParams] | None = None,
) -> CompiledGroup:
    """Compile a search object and optional OR-alternatives.

    Args:
        params: Main search object; every comparison is ANDed.
        params_or: Optional alternatives.  Each member is ANDed internally,
            the members are ORed together, and the resulting cluster is ANDed
            with the main group.

    Returns:
        A :class:`CompiledGroup` whose ``values`` list holds the main-group
        values first, then each alternative's values in member order.

    Raises:
        UnknownOperatorError: An operator-object uses an unknown ``$`` key.
        OperatorValueError: An operator received a value of the wrong shape.
        OrGroupError: ``params_or`` has fewer than two members, or a member
            compiles to no comparison at all.
    """
    values: list[Any] = []
    query_array = _compile_search(params or {}, values)

    query_or_array: list[OrAlternative] = []
    if params_or is not None:
        if len(params_or) < 2:
            raise OrGroupError(
                f"OR-alternatives require at least 2 search objects, got {len(params_or)}."
            )
        for index, member in enumerate(params_or):
            fragments = _compile_search(member, values)
            if not fragments:
                raise OrGroupError(
                    f"OR-alternative #{index} compiles to no comparison; an "
                    "always-true branch would make the whole OR cluster a no-op.",
                    index=index,
                )
            query_or_array.append(OrAlternative(query=fragments))

    return CompiledGroup(
        query_array=query_array,
        query_or_array=query_or_array,
        values=values,
    )


# ---------------------------------------------------------------------------
# Per-entry compilation
# ---------------------------------------------------------------------------


def _compile_search(params: SearchParams, values: list[Any]) -> list[Fragment]:
    fragments: list[Fragment] = []
    for key, value in params.items():
        if value is UNSET:
            continue
        if value is None:
            fragments.append(Fragment(key=key, operator=Operator.IS_NULL))
        elif isinstance(value, Mapping):
            _compile_operator_object(key, value, fragments, values)
        elif isinstance(value, _LIST_TYPES):
            if not value:
                raise OperatorValueError("[]", key, "expected at least one operator object")
            for item in value:
                if not isinstance(item, Mapping):
                    raise OperatorValueError(
                        "[]", key, f"expected a list of operator objects, got {item!r}"
                    )
                _compile_operator_object(key, item, fragments, values)
        else:
            fragments.append(Fragment(key=key, operator=Operator.EQ))
            values.append(value)
    return fragments


def _compile_operator_object(
    field: str,
    obj: Mapping[str, Any],
    fragments: list[Fragment],
    values: list[Any],
) -> None:
    if not obj:
        raise OperatorValueError("{}", field, "operator object has no operator key")

    for search_key, arg in obj.items():
        operator = resolve_search_key(search_key, field)

        match operator:
            case Operator.EQ if arg is None:
                fragments.append(Fragment(key=field, operator=Operator.IS_NULL))
            case Operator.NE if arg is None:
                fragments.append(Fragment(key=field, operator=Operator.IS_NOT_NULL))
            case Operator.CUSTOM:
                if not isinstance(arg, Mapping) or "sign" not in arg or "value" not in arg:
                    raise OperatorValueError(
                        search_key, field, 'expected {"sign": ..., "value": ...}'
                    )
                fragments.append(Fragment(key=field, operator=operator, sign=str(arg["sign"])))
                values.append(arg["value"])
            case Operator.BETWEEN | Operator.NOT_BETWEEN:
                if not isinstance(arg, _LIST_TYPES) or len(arg) != 2:
                    raise OperatorValueError(search_key, field, "expected exactly two bounds")
                fragments.append(Fragment(key=field, operator=operator))
                values.append(arg[0])
                values.append(arg[1])
            case Operator.IN | Operator.NOT_IN:
                if not isinstance(arg, (list, tuple, set, frozenset)):
                    raise OperatorValueError(search_key, field, "expected a list of values")
                fragments.append(Fragment(key=field, operator=operator))
                values.append(list(arg))
            case _:
                fragments.append(Fragment(key=field, operator=operator))
                values.append(arg)
