"""
Field widgets: the rendering side of each field type.

Every supported FieldType maps to one Widget, which knows how to display
the field with its current value and error (a Jinja template) and how to
turn submitted input back into an answer value (``coerce``). Input a control
could never produce, such as an option outside the list or a date the date
picker would not send, is refused at binding time rather than reported as a
validation error. Fields of an unknown type render as an inert notice and
refuse values.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional

from jinja2 import Environment, PackageLoader, select_autoescape
from markupsafe import Markup

from formwizard.answers import AnswerValue
from formwizard.errors import UnsupportedFieldError
from formwizard.schema import FieldType, FormField, FormSection

DATE_FORMAT = '%Y-%m-%d'


def coerce_to_bool(value: Any) -> Optional[bool]:
    """Coerce various inputs to boolean."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() in ('true', '1', 'yes', 'on')
    if isinstance(value, int):
        return value == 1
    return None


def _coerce_text(form_field: FormField, raw: Any) -> AnswerValue:
    if raw is None or isinstance(raw, str):
        return raw
    raise ValueError('Expected a text value')


def _coerce_date(form_field: FormField, raw: Any) -> AnswerValue:
    value = _coerce_text(form_field, raw)
    if value:
        try:
            datetime.strptime(value, DATE_FORMAT)
        except ValueError:
            raise ValueError('Expected a date as YYYY-MM-DD')
    return value


def _coerce_choice(form_field: FormField, raw: Any) -> AnswerValue:
    value = _coerce_text(form_field, raw)
    if value and form_field.options and value not in form_field.option_values:
        raise ValueError(f'"{value}" is not one of the options for {form_field.field_id}')
    return value


def _coerce_checkbox(form_field: FormField, raw: Any) -> AnswerValue:
    if raw is None:
        return None
    value = coerce_to_bool(raw)
    if value is None:
        raise ValueError('Expected true or false')
    return value


@dataclass(frozen=True)
class Widget:
    """How one field type is displayed and how its input is read back."""
    template: str
    input_type: Optional[str] = None
    coerce: Optional[Callable[[FormField, Any], AnswerValue]] = None


WIDGETS: Dict[FieldType, Widget] = {
    FieldType.TEXT: Widget('fields/input.html', 'text', _coerce_text),
    FieldType.EMAIL: Widget('fields/input.html', 'email', _coerce_text),
    FieldType.TEL: Widget('fields/input.html', 'tel', _coerce_text),
    FieldType.DATE: Widget('fields/input.html', 'date', _coerce_date),
    FieldType.TEXTAREA: Widget('fields/textarea.html', None, _coerce_text),
    FieldType.DROPDOWN: Widget('fields/select.html', None, _coerce_choice),
    FieldType.RADIO: Widget('fields/radio.html', None, _coerce_choice),
    FieldType.CHECKBOX: Widget('fields/checkbox.html', 'checkbox', _coerce_checkbox),
}

UNSUPPORTED_WIDGET = Widget('fields/unsupported.html')


# Initialize Jinja environment
jinja_env = Environment(
    loader=PackageLoader('formwizard', 'templates'),
    autoescape=select_autoescape(['html', 'xml']),
    trim_blocks=True,
    lstrip_blocks=True
)


def widget_for(form_field: FormField) -> Widget:
    field_type = form_field.field_type
    if field_type is None:
        return UNSUPPORTED_WIDGET
    return WIDGETS[field_type]


def bind_value(form_field: FormField, raw: Any) -> AnswerValue:
    """
    Convert submitted input into an answer value for ``form_field``.

    Raises:
        UnsupportedFieldError: if the field type cannot be rendered
        ValueError: if the input has the wrong shape for the field type
    """
    widget = widget_for(form_field)
    if widget.coerce is None:
        raise UnsupportedFieldError(
            f'Unsupported field type: {form_field.raw_type or "(none)"}'
        )
    return widget.coerce(form_field, raw)


def render_field(form_field: FormField, value: AnswerValue = None, error: str = None) -> Markup:
    """Render one field with its current value and error message."""
    widget = widget_for(form_field)
    template = jinja_env.get_template(widget.template)
    return Markup(template.render(
        field=form_field,
        value=value,
        error=error,
        input_type=widget.input_type
    ))


def render_section(section: FormSection, answers: Mapping[str, Any],
                   errors: Mapping[str, str] = None) -> Markup:
    """Render a section card holding all of its fields."""
    errors = errors or {}
    rendered = [
        render_field(f, answers.get(f.field_id), errors.get(f.field_id))
        for f in section.fields
    ]
    template = jinja_env.get_template('section.html')
    return Markup(template.render(section=section, fields=rendered))
