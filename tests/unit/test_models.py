"""
Unit tests for data models (scriptcrm/models/__init__.py).
Pure Python, no DB, no mocking required.
"""

from datetime import datetime, timezone
import pytest
from scriptcrm.models import (
    CONTENT_FIELDS,
    MAX_NAME_LENGTH,
    Script,
    ValidationResult,
    baseline_metrics,
    default_content,
    default_settings,
)


def call_script(**overrides):
    data = dict(name='Cold intro', type='call', content={'opening': 'Hi {firstName} from {company}'})
    data.update(overrides)
    return Script(**data)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

def test_script_defaults():
    s = Script()
    assert s.id is None
    assert s.name == ''
    assert s.type == 'call'
    assert s.tone == 'professional'
    assert s.status == 'draft'
    assert s.language == 'en'
    assert s.version == 1
    assert s.parent_script_id is None
    assert s.variables == []
    assert s.tags == []


def test_script_default_content_has_all_fields():
    assert Script().content == default_content()
    assert set(Script().content) == set(CONTENT_FIELDS)


def test_script_default_settings_and_metrics():
    s = Script()
    assert s.settings == default_settings()
    assert s.performance_metrics == baseline_metrics()


def test_script_timestamps_default_to_now_utc():
    before = datetime.now(timezone.utc)
    s = Script()
    assert s.created_at >= before
    assert s.updated_at >= before
    assert s.created_at.tzinfo is not None


def test_none_values_fall_back_to_defaults():
    s = Script(type=None, tone=None, status=None, content=None, tags=None, version=None)
    assert s.type == 'call'
    assert s.tone == 'professional'
    assert s.status == 'draft'
    assert s.content == default_content()
    assert s.tags == []
    assert s.version == 1


def test_partial_content_is_filled_in():
    s = Script(type='sms', content={'main_points': ['Hi {firstName}']})
    assert s.content['main_points'] == ['Hi {firstName}']
    assert s.content['opening'] == ''
    assert s.content['objection_handling'] == {}
    assert s.content['fallback_responses'] == []


def test_non_dict_content_is_reset():
    s = Script(content='not a dict')
    assert s.content == default_content()


def test_partial_metrics_are_filled_in():
    s = Script(performance_metrics={'total_uses': 4})
    assert s.performance_metrics['total_uses'] == 4
    assert s.performance_metrics['success_rate'] == 0
    assert s.performance_metrics['last_used'] is None


def test_default_collections_are_not_shared():
    a, b = Script(), Script()
    a.content['main_points'].append('x')
    a.tags.append('t')
    assert b.content['main_points'] == []
    assert b.tags == []


def test_invalid_version_resets_to_one():
    assert Script(version=0).version == 1
    assert Script(version='3').version == 1


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------

def test_valid_call_script():
    result = call_script().validate()
    assert result == ValidationResult(is_valid=True, errors=[])


def test_name_required():
    result = call_script(name='   ').validate()
    assert not result.is_valid
    assert 'Script name is required' in result.errors


def test_name_at_max_length_is_valid():
    assert call_script(name='x' * MAX_NAME_LENGTH).validate().is_valid


def test_name_over_max_length_is_invalid():
    result = call_script(name='x' * (MAX_NAME_LENGTH + 1)).validate()
    assert not result.is_valid
    assert any('100 characters' in e for e in result.errors)


def test_invalid_type():
    result = call_script(type='fax').validate()
    assert 'Script type must be call, sms, or email' in result.errors


def test_invalid_tone():
    result = call_script(tone='sarcastic').validate()
    assert 'Invalid tone specified' in result.errors


def test_invalid_status():
    result = call_script(status='deleted').validate()
    assert 'Invalid status specified' in result.errors


def test_call_requires_opening():
    result = Script(name='Call', type='call').validate()
    assert not result.is_valid
    assert result.errors == ['Opening script is required for call scripts']


def test_sms_requires_main_points():
    result = Script(name='Text', type='sms').validate()
    assert not result.is_valid
    assert [e for e in result.errors if 'Main points' in e] == ['Main points are required for SMS scripts']


def test_sms_with_main_points_is_valid():
    assert Script(name='Text', type='sms', content={'main_points': ['Hi']}).validate().is_valid


def test_email_has_no_content_requirement():
    assert Script(name='Mail', type='email').validate().is_valid


def test_errors_accumulate():
    result = Script(name='', type='call', tone='shouty', status='gone').validate()
    assert not result.is_valid
    assert result.errors == [
        'Script name is required',
        'Invalid tone specified',
        'Invalid status specified',
        'Opening script is required for call scripts',
    ]


# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------

def test_extract_variables_from_content():
    assert call_script().extract_variables() == ['firstName', 'company']


def test_refresh_variables_sets_field():
    s = call_script(variables=['stale'])
    assert s.refresh_variables() == ['firstName', 'company']
    assert s.variables == ['firstName', 'company']


def test_replace_variables_returns_new_script():
    s = call_script()
    s.refresh_variables()
    updated_at = s.updated_at

    rendered = s.replace_variables({'firstName': 'Ann'})

    assert rendered is not s
    assert rendered.content['opening'] == 'Hi Ann from {company}'
    assert s.content['opening'] == 'Hi {firstName} from {company}'
    assert rendered.variables == ['firstName', 'company']
    assert rendered.updated_at == updated_at
    assert rendered.name == s.name


# ---------------------------------------------------------------------------
# update_metrics
# ---------------------------------------------------------------------------

def test_update_metrics_merges_and_stamps():
    s = call_script(performance_metrics={'total_uses': 3, 'success_rate': 0.5})
    before = s.updated_at

    s.update_metrics({'total_uses': 4})

    assert s.performance_metrics['total_uses'] == 4
    assert s.performance_metrics['success_rate'] == 0.5
    assert s.performance_metrics['last_used'] is not None
    assert s.updated_at >= before
    assert s.performance_metrics['last_used'] == s.updated_at


def test_update_metrics_with_nothing_still_stamps():
    s = call_script()
    s.update_metrics()
    assert s.performance_metrics['last_used'] is not None


# ---------------------------------------------------------------------------
# create_version
# ---------------------------------------------------------------------------

def test_create_version():
    s = call_script(id='abc', version=3, tags=['q3'], performance_metrics={'total_uses': 10})
    v = s.create_version()
    assert v.id is None
    assert v.version == 4
    assert v.parent_script_id == 'abc'
    assert v.content == s.content
    assert v.tags == ['q3']
    assert v.settings == s.settings
    assert v.performance_metrics == baseline_metrics()


def test_create_version_does_not_share_content():
    s = call_script(id='abc')
    v = s.create_version()
    v.content['opening'] = 'changed'
    assert s.content['opening'] == 'Hi {firstName} from {company}'


# ---------------------------------------------------------------------------
# Record conversion
# ---------------------------------------------------------------------------

def test_to_record_excludes_id_and_serialises_datetimes():
    s = call_script(id='abc')
    s.update_metrics({'total_uses': 1})
    record = s.to_record()
    assert 'id' not in record
    assert isinstance(record['created_at'], str)
    assert isinstance(record['performance_metrics']['last_used'], str)


def test_from_record_round_trip():
    s = call_script(id='abc', tags=['a'])
    s.refresh_variables()
    s.update_metrics({'total_uses': 2})

    loaded = Script.from_record(s.to_record(), script_id='abc')

    assert loaded == s
    assert loaded.extract_variables() == s.variables


def test_from_record_ignores_unknown_keys():
    s = Script.from_record({'name': 'X', 'legacy_field': 1})
    assert s.name == 'X'


def test_from_record_parses_naive_timestamps_as_utc():
    s = Script.from_record({'created_at': '2026-01-02T03:04:05'})
    assert s.created_at == datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def test_from_record_bad_timestamp_defaults_to_now():
    s = Script.from_record({'created_at': 'yesterday'})
    assert isinstance(s.created_at, datetime)


def test_from_record_empty():
    assert Script.from_record({}).type == 'call'
    assert Script.from_record(None).type == 'call'
