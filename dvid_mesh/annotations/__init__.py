"""
DVID point annotations.
"""

from .dvid import (
    PointAnnotation,
    parse_annotation,
    parse_annotations,
    annotation_to_dvid,
    describe_annotation,
    dvid_to_annotation_type,
    annotation_to_dvid_type
)
from .source import AnnotationSource

__all__ = [
    'PointAnnotation',
    'parse_annotation',
    'parse_annotations',
    'annotation_to_dvid',
    'describe_annotation',
    'dvid_to_annotation_type',
    'annotation_to_dvid_type',
    'AnnotationSource'
]
