"""
Schema model for runtime-supplied forms.

A form arrives from the provider as JSON:

    {
        "form": {
            "formTitle": "Student Registration",
            "formId": "reg-2024",
            "version": "1.0",
            "sections": [
                {
                    "sectionId": 1,
                    "title": "Personal Details",
                    "description": "Tell us about yourself",
                    "fields": [
                        {
                            "fieldId": "firstName",
                            "type": "text",
                            "label": "First Name",
                            "required": true,
                            "minLength": 2,
                            "validation": {"message": "Enter your first name"}
                        }
                    ]
                }
            ]
        }
    }

The parsed model is immutable (frozen dataclasses holding tuples) and keeps
the provider's camelCase keys in ``to_dict`` so API responses mirror the
source shape.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from formwizard.errors import SchemaError


class FieldType(Enum):
    """Closed set of renderable field types."""
    TEXT = 'text'
    EMAIL = 'email'
    TEL = 'tel'
    TEXTAREA = 'textarea'
    DATE = 'date'
    DROPDOWN = 'dropdown'
    RADIO = 'radio'
    CHECKBOX = 'checkbox'

    @classmethod
    def lookup(cls, raw: Any) -> Optional['FieldType']:
        """Return the member for ``raw`` or None if it is not a known type."""
        try:
            return cls(raw)
        except ValueError:
            return None


# Types whose answers are strings (checkbox answers are booleans)
STRING_TYPES = frozenset({
    FieldType.TEXT, FieldType.EMAIL, FieldType.TEL, FieldType.TEXTAREA,
    FieldType.DATE, FieldType.DROPDOWN, FieldType.RADIO,
})
OPTION_TYPES = frozenset({FieldType.DROPDOWN, FieldType.RADIO})


@dataclass(frozen=True)
class FieldOption:
    """One selectable choice of a dropdown or radio field."""
    value: str
    label: str
    data_test_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], field_id: str) -> 'FieldOption':
        if not isinstance(data, dict) or 'value' not in data:
            raise SchemaError(f'Field "{field_id}" has an option without a value')
        value = str(data['value'])
        return cls(
            value=value,
            label=str(data.get('label', value)),
            data_test_id=data.get('dataTestId')
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'value': self.value, 'label': self.label, 'dataTestId': self.data_test_id}


@dataclass(frozen=True)
class FormField:
    """One input unit, identified form-wide by ``field_id``."""
    field_id: str
    raw_type: str
    label: str = ''
    placeholder: str = ''
    required: bool = False
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    options: Tuple[FieldOption, ...] = ()
    custom_message: Optional[str] = None
    data_test_id: Optional[str] = None

    @property
    def field_type(self) -> Optional[FieldType]:
        return FieldType.lookup(self.raw_type)

    @property
    def is_supported(self) -> bool:
        return self.field_type is not None

    @property
    def option_values(self) -> List[str]:
        return [option.value for option in self.options]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FormField':
        if not isinstance(data, dict):
            raise SchemaError('Field description must be an object')

        field_id = data.get('fieldId')
        if not isinstance(field_id, str) or not field_id:
            raise SchemaError('Every field needs a non-empty "fieldId"')

        raw_type = data.get('type')
        raw_type = str(raw_type) if raw_type is not None else ''

        options = ()
        if FieldType.lookup(raw_type) in OPTION_TYPES:
            raw_options = data.get('options') or []
            if not isinstance(raw_options, list):
                raise SchemaError(f'Field "{field_id}" options must be a list')
            options = tuple(FieldOption.from_dict(o, field_id) for o in raw_options)
            values = [o.value for o in options]
            if len(values) != len(set(values)):
                raise SchemaError(f'Field "{field_id}" has duplicate option values')

        validation = data.get('validation')
        custom_message = None
        if isinstance(validation, dict):
            custom_message = validation.get('message') or None

        return cls(
            field_id=field_id,
            raw_type=raw_type,
            label=str(data.get('label') or ''),
            placeholder=str(data.get('placeholder') or ''),
            required=data.get('required') is True,
            min_length=_length_bound(data.get('minLength'), field_id, 'minLength'),
            max_length=_length_bound(data.get('maxLength'), field_id, 'maxLength'),
            options=options,
            custom_message=custom_message,
            data_test_id=data.get('dataTestId')
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'fieldId': self.field_id,
            'type': self.raw_type,
            'label': self.label,
            'placeholder': self.placeholder,
            'required': self.required,
            'minLength': self.min_length,
            'maxLength': self.max_length,
            'dataTestId': self.data_test_id,
            'supported': self.is_supported,
        }
        if self.options:
            result['options'] = [option.to_dict() for option in self.options]
        if self.custom_message:
            result['validation'] = {'message': self.custom_message}
        return result


@dataclass(frozen=True)
class FormSection:
    """An ordered, non-empty group of fields shown as one step."""
    title: str
    fields: Tuple[FormField, ...]
    description: str = ''
    section_id: Optional[Any] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], position: int) -> 'FormSection':
        if not isinstance(data, dict):
            raise SchemaError(f'Section {position + 1} must be an object')

        raw_fields = data.get('fields')
        if not isinstance(raw_fields, list) or not raw_fields:
            raise SchemaError(f'Section {position + 1} has no fields')

        return cls(
            title=str(data.get('title') or ''),
            description=str(data.get('description') or ''),
            section_id=data.get('sectionId', position),
            fields=tuple(FormField.from_dict(f) for f in raw_fields)
        )

    def get_field(self, field_id: str) -> Optional[FormField]:
        for form_field in self.fields:
            if form_field.field_id == field_id:
                return form_field
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sectionId': self.section_id,
            'title': self.title,
            'description': self.description,
            'fields': [f.to_dict() for f in self.fields],
        }


@dataclass(frozen=True)
class FormDefinition:
    """A complete form: title plus the ordered sections."""
    form_title: str
    sections: Tuple[FormSection, ...]
    form_id: Optional[str] = None
    version: Optional[str] = None
    _fields_by_id: Dict[str, FormField] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        if not self.sections:
            raise SchemaError('Form has no sections')

        seen = {}
        for section in self.sections:
            for form_field in section.fields:
                if form_field.field_id in seen:
                    raise SchemaError(f'Duplicate fieldId "{form_field.field_id}"')
                seen[form_field.field_id] = form_field
        self._fields_by_id.update(seen)

    @property
    def section_count(self) -> int:
        return len(self.sections)

    def get_field(self, field_id: str) -> Optional[FormField]:
        return self._fields_by_id.get(field_id)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FormDefinition':
        if not isinstance(data, dict):
            raise SchemaError('Form description must be an object')

        form_title = data.get('formTitle')
        if not isinstance(form_title, str):
            raise SchemaError('Form is missing "formTitle"')

        raw_sections = data.get('sections')
        if not isinstance(raw_sections, list) or not raw_sections:
            raise SchemaError('Form has no sections')

        form_id = data.get('formId')
        version = data.get('version')
        return cls(
            form_title=form_title,
            form_id=str(form_id) if form_id is not None else None,
            version=str(version) if version is not None else None,
            sections=tuple(FormSection.from_dict(s, i) for i, s in enumerate(raw_sections))
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'formId': self.form_id,
            'formTitle': self.form_title,
            'version': self.version,
            'sections': [s.to_dict() for s in self.sections],
        }


@dataclass(frozen=True)
class User:
    """Identity returned by the provider's login hand-off."""
    roll_number: str
    name: str

    def to_dict(self) -> Dict[str, str]:
        return {'rollNumber': self.roll_number, 'name': self.name}


def parse_form_response(body: Any) -> FormDefinition:
    """
    Build a FormDefinition from a provider response body.

    Accepts either the ``{"form": {...}}`` envelope or a bare form object.

    Raises:
        SchemaError: if the body does not describe a usable form
    """
    if not isinstance(body, dict):
        raise SchemaError('Form response must be a JSON object')

    if isinstance(body.get('form'), dict):
        body = body['form']

    return FormDefinition.from_dict(body)


def _length_bound(value: Any, field_id: str, key: str) -> Optional[int]:
    """Read an optional non-negative integer bound."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise SchemaError(f'Field "{field_id}" has an invalid {key}')
    return value
