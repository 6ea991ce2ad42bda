"""
Resource path decomposition.

Hierarchical resources are written as slash-separated paths, for example
"database/6978/table/6979". The last two segments are the resource type and
id; everything before them is the parent path.
"""

from typing import NamedTuple


class ResourcePath(NamedTuple):
    """Parent, type and id of a resource path. Missing parts are None."""

    parent: str | None
    type: str | None
    id: str | None

    def to_columns(self) -> dict[str, str]:
        """Map non-empty parts to their column names."""
        columns = {
            "resourceParent": self.parent,
            "resourceType": self.type,
            "resourceId": self.id,
        }
        return {k: v for k, v in columns.items() if v is not None}


def parse_resource(resource: str | None) -> ResourcePath:
    """
    Split a resource path into (parent, type, id).

    Empty segments (leading, trailing or doubled slashes) are ignored.

    - "a/b/c/d" -> ("a/b", "c", "d")
    - "doc/1"   -> (None, "doc", "1")
    - "doc"     -> (None, None, "doc")
    - ""        -> (None, None, None)
    """
    if not resource:
        return ResourcePath(None, None, None)

    segments = [s for s in resource.split("/") if s]
    if not segments:
        return ResourcePath(None, None, None)
    if len(segments) == 1:
        return ResourcePath(None, None, segments[0])

    parent = "/".join(segments[:-2]) or None
    return ResourcePath(parent, segments[-2], segments[-1])
