"""
Label & field selectors, as sent to the API in the list & watch requests.

The selectors can be given as the server-side syntax strings directly
(e.g. ``"app=web,tier in (front,back),!legacy"``) or built from the mappings::

    build_label_selector({'app': 'web', 'tier': ['front', 'back'], 'legacy': ABSENT})
"""
import enum
from typing import Iterable, Mapping, Union


class MetaFilterToken(enum.Enum):
    """ Tokens for filtering by labels. """
    PRESENT = enum.auto()
    ABSENT = enum.auto()


# For exporting to the top-level package.
ABSENT = MetaFilterToken.ABSENT
PRESENT = MetaFilterToken.PRESENT

# A single label's criterion: an exact value, one of the values, or a presence/absence.
LabelValue = Union[str, Iterable[str], MetaFilterToken]
LabelSelector = Union[str, Mapping[str, LabelValue]]
FieldSelector = Union[str, Mapping[str, str]]


def build_label_selector(labels: LabelSelector) -> str:
    if isinstance(labels, str):
        return labels

    parts = []
    for key, value in labels.items():
        if value is PRESENT:
            parts.append(key)
        elif value is ABSENT:
            parts.append(f'!{key}')
        elif isinstance(value, str):
            parts.append(f'{key}={value}')
        else:
            parts.append(f'{key} in ({",".join(value)})')
    return ','.join(parts)


def build_field_selector(fields: FieldSelector) -> str:
    if isinstance(fields, str):
        return fields
    return ','.join(f'{key}={value}' for key, value in fields.items())
