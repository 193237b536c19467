"""Small request/response helpers resolving fixtures in debuggee state."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .constants import Modifier, tag_name
from .errors import Failure

if TYPE_CHECKING:  # pragma: no cover
    from .session import DebuggeeSession

LOGGER = logging.getLogger("jdwpdbg.queries")


def class_signature(class_name: str) -> str:
    """``pkg.Outer$Inner`` -> ``Lpkg/Outer$Inner;``"""
    return "L" + class_name.replace(".", "/") + ";"


def get_reference_type_id(session: "DebuggeeSession", signature: str) -> int:
    classes = session.commands.classes_by_signature(signature)
    if len(classes) != 1:
        raise Failure(f"expected exactly one loaded class for {signature}, got {len(classes)}")
    return classes[0].type_id


def get_class_field_id(session: "DebuggeeSession", class_id: int, name: str) -> int:
    """Return the fieldID of the static field ``name`` declared in ``class_id``."""
    matches = [entry for entry in session.commands.fields(class_id) if entry.name == name]
    if not matches:
        raise Failure(f"no field {name!r} declared in class {class_id}")
    if len(matches) > 1:
        raise Failure(f"{len(matches)} fields named {name!r} declared in class {class_id}")
    entry = matches[0]
    if not entry.mod_bits & Modifier.STATIC:
        raise Failure(f"field {name!r} of class {class_id} is not static")
    return entry.field_id


def query_typed_value(session: "DebuggeeSession", scope: int, name: str, expected_tag: int) -> int:
    """Fetch static field ``name`` of class ``scope`` and return its object ID.

    The value must carry ``expected_tag``; otherwise :class:`UnexpectedTag` is
    raised with both tags.  A single round trip is made, callers decide on
    retries.
    """
    field_id = get_class_field_id(session, scope, name)
    (value,) = session.commands.get_static_values(scope, [field_id])
    LOGGER.debug("field %s = %s", name, value)
    object_id = value.object_id(expected_tag, where=f'field "{name}"')
    LOGGER.debug("got %s id: %s", tag_name(expected_tag), object_id)
    return object_id
