"""
Data model for LLDAP users, groups and custom attributes.

The classes mirror the JSON shapes of the GraphQL API. ``from_dict`` accepts
partial payloads (e.g. the ``{id displayName}`` stubs nested inside a user's
group list) and ``to_dict`` produces the camelCase form used on the wire.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class AttributeType(str, Enum):
    """Value types accepted for custom attribute schemas."""

    DATE_TIME = 'DATE_TIME'
    INTEGER = 'INTEGER'
    JPEG_PHOTO = 'JPEG_PHOTO'
    STRING = 'STRING'

    @classmethod
    def parse(cls, value: Any) -> 'AttributeType':
        """Parse a type name case-insensitively.

        Raises:
            ValueError: If the name is not one of ``VALID_ATTRIBUTE_TYPES``
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValueError(
                f"invalid attribute type {value}, expected one of {', '.join(VALID_ATTRIBUTE_TYPES)}"
            )


VALID_ATTRIBUTE_TYPES = [t.value for t in AttributeType]

# Attribute names the directory always reports; everything else is custom.
HARDCODED_ATTRIBUTE_NAMES = frozenset([
    'avatar',
    'creation_date',
    'display_name',
    'first_name',
    'group_id',
    'last_name',
    'mail',
    'user_id',
    'uuid',
])


@dataclass
class CustomAttribute:
    name: str
    value: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CustomAttribute':
        return cls(name=data['name'], value=list(data.get('value') or []))

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'value': list(self.value)}


def _custom_only(attributes: List[CustomAttribute]) -> List[CustomAttribute]:
    return [a for a in attributes if a.name not in HARDCODED_ATTRIBUTE_NAMES]


def _attribute_map(attributes: List[CustomAttribute]) -> Dict[str, List[str]]:
    return {a.name: list(a.value) for a in attributes}


@dataclass
class User:
    id: str
    email: str = ''
    display_name: str = ''
    first_name: str = ''
    last_name: str = ''
    avatar: str = ''
    creation_date: str = ''
    uuid: str = ''
    groups: List['Group'] = field(default_factory=list)
    attributes: List[CustomAttribute] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        return cls(
            id=data['id'],
            email=data.get('email') or '',
            display_name=data.get('displayName') or '',
            first_name=data.get('firstName') or '',
            last_name=data.get('lastName') or '',
            avatar=data.get('avatar') or '',
            creation_date=data.get('creationDate') or '',
            uuid=data.get('uuid') or '',
            groups=[Group.from_dict(g) for g in data.get('groups') or []],
            attributes=[CustomAttribute.from_dict(a) for a in data.get('attributes') or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'email': self.email,
            'displayName': self.display_name,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'avatar': self.avatar,
            'creationDate': self.creation_date,
            'uuid': self.uuid,
            'groups': [{'id': g.id, 'displayName': g.display_name} for g in self.groups],
            'attributes': [a.to_dict() for a in self.attributes],
        }

    def group_ids(self) -> List[int]:
        return [g.id for g in self.groups]

    def custom_attributes(self) -> List[CustomAttribute]:
        return _custom_only(self.attributes)

    def attribute_values(self) -> Dict[str, List[str]]:
        return _attribute_map(self.custom_attributes())


@dataclass
class Group:
    id: int = 0
    display_name: str = ''
    creation_date: str = ''
    uuid: str = ''
    users: List[User] = field(default_factory=list)
    attributes: List[CustomAttribute] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Group':
        return cls(
            id=int(data.get('id') or 0),
            display_name=data.get('displayName') or '',
            creation_date=data.get('creationDate') or '',
            uuid=data.get('uuid') or '',
            users=[User.from_dict(u) for u in data.get('users') or []],
            attributes=[CustomAttribute.from_dict(a) for a in data.get('attributes') or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'displayName': self.display_name,
            'creationDate': self.creation_date,
            'uuid': self.uuid,
            'users': [{'id': u.id, 'displayName': u.display_name} for u in self.users],
            'attributes': [a.to_dict() for a in self.attributes],
        }

    def user_ids(self) -> List[str]:
        return [u.id for u in self.users]

    def custom_attributes(self) -> List[CustomAttribute]:
        return _custom_only(self.attributes)

    def attribute_values(self) -> Dict[str, List[str]]:
        return _attribute_map(self.custom_attributes())


@dataclass
class GroupAttributeSchema:
    name: str
    attribute_type: AttributeType
    is_list: bool = False
    is_visible: bool = True
    is_hardcoded: bool = False
    is_readonly: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GroupAttributeSchema':
        return cls(
            name=data['name'],
            attribute_type=AttributeType.parse(data['attributeType']),
            is_list=bool(data.get('isList')),
            is_visible=bool(data.get('isVisible')),
            is_hardcoded=bool(data.get('isHardcoded')),
            is_readonly=bool(data.get('isReadonly')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'attributeType': self.attribute_type.value,
            'isList': self.is_list,
            'isVisible': self.is_visible,
            'isHardcoded': self.is_hardcoded,
            'isReadonly': self.is_readonly,
        }


@dataclass
class UserAttributeSchema:
    name: str
    attribute_type: AttributeType
    is_list: bool = False
    is_visible: bool = True
    is_editable: bool = False
    is_hardcoded: bool = False
    is_readonly: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UserAttributeSchema':
        return cls(
            name=data['name'],
            attribute_type=AttributeType.parse(data['attributeType']),
            is_list=bool(data.get('isList')),
            is_visible=bool(data.get('isVisible')),
            is_editable=bool(data.get('isEditable')),
            is_hardcoded=bool(data.get('isHardcoded')),
            is_readonly=bool(data.get('isReadonly')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'attributeType': self.attribute_type.value,
            'isList': self.is_list,
            'isVisible': self.is_visible,
            'isEditable': self.is_editable,
            'isHardcoded': self.is_hardcoded,
            'isReadonly': self.is_readonly,
        }


def find_schema(schemas: List[Any], name: str) -> Optional[Any]:
    """Return the schema called ``name`` or None."""
    for schema in schemas:
        if schema.name == name:
            return schema
    return None
