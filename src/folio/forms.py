"""
Generic entity dialog built on WTForms.

One form class is generated per schema; the same dialog handles create (no
seed record) and edit (seeded from a record). Validation always runs before
the repository is called, so invalid input never reaches the backend.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type

from wtforms import Form
from wtforms.fields import (
    DateField,
    EmailField,
    HiddenField,
    PasswordField,
    SelectField,
    StringField,
    TextAreaField,
    URLField,
)
from wtforms.validators import URL, Email, EqualTo, InputRequired, Length, Optional as OptionalValidator

from .errors import BackendError, ValidationError
from .repository import EntityRepository, from_wire
from .schemas import (
    CONTACT_SCHEMA,
    LOGIN_SCHEMA,
    PASSWORD_SCHEMA,
    PROFILE_SCHEMA,
    EntitySchema,
    FieldSpec,
)

logger = logging.getLogger(__name__)

# Kinds whose empty input means "no value"
NULLABLE_KINDS = ("date", "url", "choice", "hidden")


def _strip(value):
    return value.strip() if isinstance(value, str) else value


def _length_validator(spec: FieldSpec) -> Length:
    lo = spec.min_length if spec.min_length is not None else -1
    hi = spec.max_length if spec.max_length is not None else -1
    if lo > 0 and hi > 0:
        message = f"{spec.label} must be between {lo} and {hi} characters"
    elif lo > 0:
        message = f"{spec.label} must be at least {lo} characters"
    else:
        message = f"{spec.label} must be at most {hi} characters"
    return Length(min=lo, max=hi, message=message)


def _validators(spec: FieldSpec) -> List[Any]:
    validators: List[Any] = []
    if spec.required:
        validators.append(InputRequired(message=f"{spec.label} is required"))
    else:
        validators.append(OptionalValidator())
    if spec.min_length is not None or spec.max_length is not None:
        validators.append(_length_validator(spec))
    if spec.kind == "url":
        validators.append(URL(message="Please enter a valid URL"))
    if spec.kind == "email":
        validators.append(Email(message="Please enter a valid email address"))
    if spec.equal_to:
        validators.append(EqualTo(spec.equal_to, message="Passwords do not match"))
    return validators


def build_field(spec: FieldSpec):
    """Create the unbound WTForms field for one field spec."""
    kwargs: Dict[str, Any] = {
        "label": spec.label,
        "validators": _validators(spec),
    }
    if spec.placeholder:
        kwargs["render_kw"] = {"placeholder": spec.placeholder}

    if spec.kind == "date":
        return DateField(format="%Y-%m-%d", **kwargs)
    if spec.kind == "choice":
        choices = [("", f"Select {spec.label.lower()}")] + [(c, c) for c in spec.choices]
        return SelectField(choices=choices, **kwargs)
    if spec.kind == "textarea":
        return TextAreaField(filters=[_strip], **kwargs)
    if spec.kind == "url":
        return URLField(filters=[_strip], **kwargs)
    if spec.kind == "email":
        return EmailField(filters=[_strip], **kwargs)
    if spec.kind == "hidden":
        return HiddenField(**kwargs)
    if spec.kind == "password":
        return PasswordField(**kwargs)
    return StringField(filters=[_strip], **kwargs)


_FORM_CLASSES: Dict[str, Type[Form]] = {}


def build_form_class(schema: EntitySchema) -> Type[Form]:
    """
    Generate (once) the WTForms class for a schema.

    Args:
        schema: Schema descriptor listing fields in display order.

    Returns:
        A ``wtforms.Form`` subclass with one field per schema field.
    """
    cls = _FORM_CLASSES.get(schema.table + ":" + schema.title)
    if cls is None:
        attrs = {spec.key: build_field(spec) for spec in schema.fields}
        name = schema.title.replace(" ", "") + "Form"
        cls = type(name, (Form,), attrs)
        _FORM_CLASSES[schema.table + ":" + schema.title] = cls
    return cls


def cleaned_values(form: Form, schema: EntitySchema) -> Dict[str, Any]:
    """
    Values of a validated form, keyed by schema field.

    Empty dates, URLs, choices and hidden paths become None; password fields
    are left out.
    """
    values: Dict[str, Any] = {}
    for spec in schema.fields:
        if spec.kind == "password":
            continue
        value = form[spec.key].data
        if spec.kind in NULLABLE_KINDS and value in ("", None):
            value = None
        values[spec.key] = value
    return values


@dataclass
class DialogOutcome:
    """Result of one dialog submit."""

    saved: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    field_errors: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.saved is not None


class EntityDialog:
    """
    Create/edit dialog for one entity record.

    Args:
        repository: Repository of the entity table.
        owner: Acting identity.
        record: Existing row (edit mode) or None (create mode).
        on_saved: Called with the stored row after a successful save.
    """

    def __init__(
        self,
        repository: EntityRepository,
        owner: str,
        record: Optional[Dict[str, Any]] = None,
        on_saved: Optional[Callable[[Dict[str, Any]], None]] = None,
    ):
        self.repository = repository
        self.schema = repository.schema
        self.owner = owner
        self.record = record
        self.on_saved = on_saved
        self.form_class = build_form_class(self.schema)

    @property
    def mode(self) -> str:
        return "edit" if self.record and self.record.get("id") else "create"

    @property
    def record_id(self) -> Optional[str]:
        return self.record.get("id") if self.record else None

    def form(self, formdata=None) -> Form:
        """Bind the form to submitted data, or seed it from the record."""
        if formdata is None and self.record:
            return self.form_class(data=from_wire(self.schema, self.record))
        return self.form_class(formdata=formdata)

    def submit(self, form: Form, extra: Optional[Dict[str, Any]] = None) -> DialogOutcome:
        """
        Validate and persist.

        Args:
            form: A form bound to the submitted data.
            extra: Values merged after validation (e.g. an uploaded image path).

        Returns:
            DialogOutcome with the saved row, or the inline/remote errors.
            Failures never raise; the caller re-renders the bound form.
        """
        if not form.validate():
            return DialogOutcome(field_errors=dict(form.errors))

        values = cleaned_values(form, self.schema)
        if extra:
            values.update(extra)

        try:
            row = self.repository.save(self.owner, values, record_id=self.record_id)
        except ValidationError as e:
            for key, messages in e.field_errors.items():
                if key in form:
                    form[key].errors = list(form[key].errors) + messages
            return DialogOutcome(error=str(e), field_errors=e.field_errors)
        except BackendError as e:
            logger.warning(f"Saving {self.schema.table} failed: {e}")
            return DialogOutcome(error=str(e))

        if self.on_saved is not None:
            self.on_saved(row)
        return DialogOutcome(saved=row)


def dialog_for(repositories, table: str, owner: str, record_id: Optional[str] = None) -> EntityDialog:
    """Dialog for ``table``, in edit mode when ``record_id`` is given."""
    repository = repositories.entity(table)
    record = repository.get(owner, record_id) if record_id else None
    return EntityDialog(repository, owner, record=record)


ProfileForm = build_form_class(PROFILE_SCHEMA)
ContactForm = build_form_class(CONTACT_SCHEMA)
PasswordForm = build_form_class(PASSWORD_SCHEMA)
LoginForm = build_form_class(LOGIN_SCHEMA)
