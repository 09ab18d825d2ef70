"""
Conversion between DVID annotation elements and point annotations.

DVID stores bookmark types from the body's point of view ("Split", "Merge")
while the viewer labels them by the error they mark ("False Merge",
"False Split").
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError, conlist

from ..core.exceptions import DecodeMalformed

_DVID_TO_ANNOTATION_TYPE = {
    'Split': 'False Merge',
    'Merge': 'False Split',
}
_ANNOTATION_TO_DVID_TYPE = {v: k for k, v in _DVID_TO_ANNOTATION_TYPE.items()}


def dvid_to_annotation_type(typestr: str) -> str:
    return _DVID_TO_ANNOTATION_TYPE.get(typestr, typestr)


def annotation_to_dvid_type(typestr: str) -> str:
    return _ANNOTATION_TO_DVID_TYPE.get(typestr, typestr)


@dataclass
class PointAnnotation:
    """
    A point annotation as the viewer sees it.

    Attributes:
        point: Voxel coordinate (x, y, z)
        kind: DVID element kind ("Note", ...)
        prop: Free-form string properties
        related_segments: Body ids the annotation refers to
        description: Display text derived from the properties
    """
    point: Tuple[int, int, int]
    kind: str = 'Note'
    prop: Dict[str, str] = field(default_factory=dict)
    related_segments: List[int] = field(default_factory=list)
    description: Optional[str] = None

    @property
    def id(self) -> str:
        return f"{self.point[0]}_{self.point[1]}_{self.point[2]}"

    @property
    def bookmark_type(self) -> Optional[str]:
        return self.prop.get('type') or None

    @property
    def checked(self) -> bool:
        return self.prop.get('checked', '') not in ('', '0')

    @property
    def comment(self) -> Optional[str]:
        return self.prop.get('comment') or None


class _DVIDElement(BaseModel):
    """Wire shape of one DVID annotation element."""
    Kind: str
    Pos: conlist(int, min_length=3, max_length=3)
    Prop: Dict[str, Any] = Field(default_factory=dict)


def describe_annotation(annotation: PointAnnotation) -> Optional[str]:
    """Display text: bookmark type and comment, whichever are present."""
    parts = [p for p in (annotation.bookmark_type, annotation.comment) if p]
    return ': '.join(parts) if parts else None


def parse_annotation(entry: Optional[Dict[str, Any]]) -> Optional[PointAnnotation]:
    """
    Convert one DVID element into a PointAnnotation.

    Args:
        entry: Element as returned by the annotation endpoints

    Returns:
        PointAnnotation, or None for empty entries and elements of kind "Unknown"

    Raises:
        DecodeMalformed: If the element lacks a valid Kind, Pos or Prop
    """
    if not entry:
        return None
    try:
        element = _DVIDElement.model_validate(entry)
    except ValidationError as e:
        raise DecodeMalformed(f"Invalid annotation element: {e}") from e

    if element.Kind == 'Unknown':
        return None

    prop = {k: '' if v is None else str(v) for k, v in element.Prop.items()}
    related_segments: List[int] = []
    if element.Kind == 'Note':
        if prop.get('type'):
            prop['type'] = dvid_to_annotation_type(prop['type'])
        body_id = prop.get('body ID', '')
        if body_id:
            try:
                related_segments.append(int(body_id))
            except ValueError as e:
                raise DecodeMalformed(f"Invalid body ID {body_id!r}") from e

    annotation = PointAnnotation(
        point=tuple(element.Pos),
        kind=element.Kind,
        prop=prop,
        related_segments=related_segments,
    )
    annotation.description = describe_annotation(annotation)
    return annotation


def parse_annotations(entries: Optional[Iterable[Optional[Dict[str, Any]]]]) -> List[PointAnnotation]:
    """Parse a list of elements, skipping empty and "Unknown" ones."""
    annotations = []
    for entry in entries or []:
        annotation = parse_annotation(entry)
        if annotation is not None:
            annotations.append(annotation)
    return annotations


def annotation_to_dvid(annotation: PointAnnotation, user: Optional[str] = None) -> Dict[str, Any]:
    """
    Convert a PointAnnotation into a DVID "Note" element.

    Empty properties are dropped, an unchecked "checked" flag is omitted and
    the first related segment becomes the "body ID" property.

    Args:
        annotation: Annotation to upload
        user: Author recorded in the element's tags and properties

    Returns:
        JSON-serializable element
    """
    prop = dict(annotation.prop)
    if annotation.bookmark_type:
        prop['type'] = annotation_to_dvid_type(annotation.bookmark_type)
    prop = {k: v for k, v in prop.items() if v != ''}
    if 'checked' in prop and not annotation.checked:
        del prop['checked']
    if annotation.related_segments:
        prop['body ID'] = str(annotation.related_segments[0])

    obj: Dict[str, Any] = {
        'Kind': 'Note',
        'Pos': [int(c) for c in annotation.point],
        'Prop': prop,
    }
    if user:
        obj['Tags'] = [f'user:{user}']
        prop['user'] = user
    return obj
