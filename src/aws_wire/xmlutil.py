# src/aws_wire/xmlutil.py

"""
Small helpers for the XML bodies returned by S3 and the Query-protocol services,
and for the form-encoded parameters those services expect.

AWS XML responses carry a default namespace that changes per service and API
version, so the ElementTree lookups here compare local names only. Query
results are converted wholesale with xmltodict.
"""

import xml.etree.ElementTree as ET
from typing import Any, Iterable, Iterator, Mapping

import xmltodict

# Wrapper element names that always hold a list.
LIST_ITEM_TAGS = frozenset({"member", "item"})
FORCE_LIST_TAGS = ("member", "item", "entry")


def local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def parse_xml(body: bytes) -> ET.Element | None:
    if not body or not body.strip():
        return None
    try:
        return ET.fromstring(body)
    except ET.ParseError:
        return None


def iter_named(element: ET.Element, name: str) -> Iterator[ET.Element]:
    """Yields every descendant (and the element itself) whose local name is ``name``."""
    for node in element.iter():
        if local_name(node.tag) == name:
            yield node


def find_named(element: ET.Element, name: str) -> ET.Element | None:
    return next(iter_named(element, name), None)


def children_named(element: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in element if local_name(child.tag) == name]


def child_text(element: ET.Element, name: str, default: str | None = None) -> str | None:
    for child in element:
        if local_name(child.tag) == name:
            return child.text if child.text is not None else ""
    return default


def _simplify(value: Any, list_tags: frozenset) -> Any:
    """
    Collapses xmltodict's output into the shapes callers expect.

    A structure whose only child is a list wrapper (``member``, ``item`` or one
    of ``list_tags``) becomes that list, and ``entry``/``key``/``value``
    children become a plain dict.
    """
    if isinstance(value, list):
        return [_simplify(item, list_tags) for item in value]
    if not isinstance(value, dict):
        return value

    if len(value) == 1:
        (name, inner), = value.items()
        if name in list_tags:
            items = inner if isinstance(inner, list) else [inner]
            return [_simplify(item, list_tags) for item in items]
        if name == "entry":
            return {
                entry.get("key"): _simplify(entry.get("value"), list_tags)
                for entry in inner
                if isinstance(entry, dict)
            }
    return {name: _simplify(inner, list_tags) for name, inner in value.items()}


def parse_query_result(body: bytes, action: str, list_tags: Iterable[str] = ()) -> dict[str, Any]:
    """
    Returns the ``<{action}Result>`` element of a Query response as a dict.

    Leaves are stripped text (None when empty), repeated siblings are lists
    and attributes, ``xmlns`` included, are dropped. A response without a
    result element yields ``{}``.

    Raises:
        xml.parsers.expat.ExpatError: ``body`` is not well-formed XML.
    """
    if not body or not body.strip():
        return {}
    document = xmltodict.parse(
        body,
        xml_attribs=False,
        process_namespaces=False,
        force_list=FORCE_LIST_TAGS,
    )
    response = next(iter(document.values()), None)
    if not isinstance(response, dict):
        return {}
    result = response.get(f"{action}Result")
    if not isinstance(result, dict):
        return {}
    return _simplify(result, LIST_ITEM_TAGS | frozenset(list_tags))


def extract_error(body: bytes) -> tuple[str, str, str | None] | None:
    """
    Finds the ``<Error>`` envelope in an XML error body.

    Handles the bare S3 form, the Query ``<ErrorResponse>`` form and the EC2
    ``<Response><Errors>`` form. Returns ``(code, message, request_id)`` or None.
    """
    root = parse_xml(body)
    if root is None:
        return None

    error = find_named(root, "Error")
    if error is None:
        return None

    code = child_text(error, "Code") or ""
    message = child_text(error, "Message") or ""
    request_id = None
    for name in ("RequestId", "RequestID"):
        node = find_named(root, name)
        if node is not None and node.text:
            request_id = node.text.strip()
            break
    return code, message, request_id


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def flatten_query_params(
    params: Mapping[str, Any],
    prefix: str = "",
    member_names: Mapping[str, str] | None = None,
) -> list[tuple[str, str]]:
    """
    Flattens nested parameters into Query-protocol form fields.

    Lists become ``Name.member.N`` (1-based), or ``Name.<member_name>.N`` when
    ``member_names`` maps the list's key to a member name (ElastiCache uses
    ``SecurityGroupIds.SecurityGroupId.N``). Nested mappings join keys with
    ``.``, booleans become ``true``/``false`` and None values are skipped.
    """
    member_names = member_names or {}
    fields: list[tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}.{key}" if prefix else key
        if value is None:
            continue
        if isinstance(value, Mapping):
            fields.extend(flatten_query_params(value, name, member_names))
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value, start=1):
                member = f"{name}.{member_names.get(key, 'member')}.{index}"
                if isinstance(item, Mapping):
                    fields.extend(flatten_query_params(item, member, member_names))
                else:
                    fields.append((member, _scalar(item)))
        else:
            fields.append((name, _scalar(value)))
    return fields
