"""
Data Models
The Script entity: a templated, versioned call / SMS / email message definition.
Pure Python objects, no database logic.
"""

import copy
import logging
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from scriptcrm.engine.variables import extract_variables, replace_variables

logger = logging.getLogger(__name__)

SCRIPT_TYPES = ('call', 'sms', 'email')
SCRIPT_TONES = ('professional', 'casual', 'friendly', 'assertive')
SCRIPT_STATUSES = ('draft', 'active', 'archived')
MAX_NAME_LENGTH = 100

CONTENT_FIELDS = ('opening', 'main_points', 'objection_handling', 'closing', 'fallback_responses')
METRIC_FIELDS = ('total_uses', 'success_rate', 'average_duration', 'conversion_rate', 'last_used')

# Fields that may legitimately stay None after construction
_NULLABLE_FIELDS = {'id', 'parent_script_id'}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_content() -> Dict[str, Any]:
    return {
        'opening': '',
        'main_points': [],
        'objection_handling': {},
        'closing': '',
        'fallback_responses': [],
    }


def default_settings() -> Dict[str, Any]:
    return {
        'max_duration': 300,  # seconds, calls only
        'retry_attempts': 3,
        'voice_settings': {
            'voice_id': 'en-US-Standard-A',
            'speed': 1.0,
            'pitch': 0.0,
        },
        'ai_behavior': {
            'interruption_handling': True,
            'sentiment_adaptation': True,
            'conversation_flow': 'adaptive',  # strict / adaptive / free_form
        },
    }


def baseline_metrics() -> Dict[str, Any]:
    return {
        'total_uses': 0,
        'success_rate': 0,
        'average_duration': 0,
        'conversion_rate': 0,
        'last_used': None,
    }


def _as_datetime(value: Any) -> Optional[datetime]:
    """
    Accept a datetime or an ISO-8601 string. Naive values are taken as UTC.
    Anything unparseable becomes None.
    """
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            logger.debug(f"_as_datetime: unparseable timestamp {value!r}")
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _serialize(value: Any) -> Any:
    """Recursively turn datetimes into ISO strings so the value is JSON-safe."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    return value


@dataclass
class ValidationResult:
    """Outcome of Script.validate()"""
    is_valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class Script:
    """Call / SMS / email script with {placeholder} variables"""
    id: Optional[str] = None
    name: str = ''
    description: str = ''
    type: str = 'call'
    industry: str = ''
    language: str = 'en'
    tone: str = 'professional'
    objective: str = ''
    content: Dict[str, Any] = field(default_factory=default_content)
    variables: List[str] = field(default_factory=list)
    settings: Dict[str, Any] = field(default_factory=default_settings)
    performance_metrics: Dict[str, Any] = field(default_factory=baseline_metrics)
    tags: List[str] = field(default_factory=list)
    status: str = 'draft'
    created_by: str = ''
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 1
    parent_script_id: Optional[str] = None

    def __post_init__(self):
        # None means "omitted": fall back to the field default
        for f in fields(self):
            if f.name in _NULLABLE_FIELDS or getattr(self, f.name) is not None:
                continue
            if f.name in ('created_at', 'updated_at'):
                continue
            default = f.default_factory() if callable(f.default_factory) else f.default
            setattr(self, f.name, default)

        if not isinstance(self.content, dict):
            logger.warning(f"Script {self.id}: content is {type(self.content).__name__}, resetting to empty content")
            self.content = default_content()
        else:
            self.content = {**default_content(), **self.content}

        self.performance_metrics = {**baseline_metrics(), **(self.performance_metrics or {})}
        self.performance_metrics['last_used'] = _as_datetime(self.performance_metrics['last_used'])

        now = utcnow()
        self.created_at = _as_datetime(self.created_at) or now
        self.updated_at = _as_datetime(self.updated_at) or now

        if not isinstance(self.version, int) or self.version < 1:
            self.version = 1

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate(self) -> ValidationResult:
        """Check every rule and report all violations together."""
        errors = []

        if not isinstance(self.name, str) or not self.name.strip():
            errors.append('Script name is required')
        elif len(self.name) > MAX_NAME_LENGTH:
            errors.append(f'Script name must be {MAX_NAME_LENGTH} characters or fewer')

        if self.type not in SCRIPT_TYPES:
            errors.append('Script type must be call, sms, or email')

        if self.tone not in SCRIPT_TONES:
            errors.append('Invalid tone specified')

        if self.status not in SCRIPT_STATUSES:
            errors.append('Invalid status specified')

        if self.type == 'call' and not self.content.get('opening'):
            errors.append('Opening script is required for call scripts')

        if self.type == 'sms' and not self.content.get('main_points'):
            errors.append('Main points are required for SMS scripts')

        return ValidationResult(is_valid=not errors, errors=errors)

    # -------------------------------------------------------------------------
    # Variables
    # -------------------------------------------------------------------------

    def extract_variables(self) -> List[str]:
        return extract_variables(self.content)

    def refresh_variables(self) -> List[str]:
        """Re-derive self.variables from the current content."""
        self.variables = self.extract_variables()
        return self.variables

    def replace_variables(self, values: Dict[str, Any] = None) -> 'Script':
        """
        Render the script with the given values.
        Returns a new Script; this one (and its stored variables) is untouched.
        """
        rendered = copy.deepcopy(self)
        rendered.content = replace_variables(self.content, values or {})
        return rendered

    # -------------------------------------------------------------------------
    # Metrics and versioning
    # -------------------------------------------------------------------------

    def update_metrics(self, metrics: Dict[str, Any] = None):
        """Merge metric fields in place and stamp last_used / updated_at."""
        now = utcnow()
        self.performance_metrics = {
            **self.performance_metrics,
            **(metrics or {}),
            'last_used': now,
        }
        self.updated_at = now

    def create_version(self) -> 'Script':
        """Next version in this script's lineage. Not yet persisted."""
        now = utcnow()
        version = copy.deepcopy(self)
        version.id = None
        version.version = self.version + 1
        version.parent_script_id = self.id
        version.created_at = now
        version.updated_at = now
        version.performance_metrics = baseline_metrics()
        return version

    # -------------------------------------------------------------------------
    # Record conversion
    # -------------------------------------------------------------------------

    def to_record(self) -> Dict[str, Any]:
        """JSON-safe dict of every field except id."""
        return {
            f.name: _serialize(copy.deepcopy(getattr(self, f.name)))
            for f in fields(self)
            if f.name != 'id'
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any], script_id: Optional[str] = None) -> 'Script':
        """Build a Script from a stored record. Unknown keys are ignored."""
        known = {f.name for f in fields(cls)}
        data = {k: copy.deepcopy(v) for k, v in (record or {}).items() if k in known}
        if script_id is not None:
            data['id'] = script_id
        return cls(**data)
