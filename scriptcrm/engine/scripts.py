"""
Script Service - lifecycle operations for call / SMS / email scripts.

Orchestrates the Script entity against a document store: every write is
validated first, variables are re-derived from content on create and update,
and every access is checked against the owner (created_by).

Concurrent updates to the same script are last-writer-wins; there is no
revision check.
"""

import logging
import re
from dataclasses import dataclass, field, fields
from datetime import timedelta
from typing import Any, Dict, List, Optional, Union

from scriptcrm.bus.events import (
    bus as default_bus,
    EventBus,
    EVENT_SCRIPT_CREATED,
    EVENT_SCRIPT_UPDATED,
    EVENT_SCRIPT_DELETED,
    EVENT_SCRIPT_DUPLICATED,
    EVENT_SCRIPT_VERSIONED,
    EVENT_SCRIPT_METRICS_UPDATED,
)
from scriptcrm.config import config
from scriptcrm.db.store import DocumentStore
from scriptcrm.engine.errors import AccessDeniedError, NotFoundError, StorageError, ValidationError
from scriptcrm.engine.templates import TemplateCatalog
from scriptcrm.logging_config import log_call
from scriptcrm.models import METRIC_FIELDS, SCRIPT_STATUSES, SCRIPT_TYPES, Script, baseline_metrics, utcnow

logger = logging.getLogger(__name__)

# Patch semantics for update_script. Anything outside these three sets is rejected.
_REPLACE_FIELDS = {
    'name', 'description', 'type', 'industry', 'language', 'tone', 'objective', 'tags', 'status',
}
_MERGE_FIELDS = {'content', 'settings'}
_READ_ONLY_FIELDS = {
    'id', 'variables', 'performance_metrics', 'version', 'parent_script_id',
    'created_by', 'created_at', 'updated_at',
}

_FILTER_FIELDS = ('type', 'status', 'industry', 'objective')
_ORDER_FIELDS = {f.name for f in fields(Script)} - {'id', 'content', 'settings', 'performance_metrics', 'variables', 'tags'}
_SETTABLE_METRICS = set(METRIC_FIELDS) - {'last_used'}

_TIME_RANGE_RE = re.compile(r'^(\d+)([hdw])$')
_TIME_UNITS = {'h': 'hours', 'd': 'days', 'w': 'weeks'}


@dataclass
class ScriptPage:
    """One page of get_scripts results"""
    scripts: List[Script] = field(default_factory=list)
    total: int = 0
    has_more: bool = False


def merge_script_patch(script: Script, patch: Dict[str, Any]) -> Script:
    """
    Apply an update patch to a script, field by field.

      replace-only : name, description, type, industry, language, tone, objective, tags, status
      merged       : content, settings (patch keys overlay the existing dict)
      read-only    : id, variables, performance_metrics, version, parent_script_id,
                     created_by, created_at, updated_at (silently ignored)

    Unknown keys raise ValidationError. Returns a new Script; the input is untouched.
    """
    unknown = set(patch) - _REPLACE_FIELDS - _MERGE_FIELDS - _READ_ONLY_FIELDS
    if unknown:
        raise ValidationError([f"Unknown script fields: {', '.join(sorted(unknown))}"])

    ignored = set(patch) & _READ_ONLY_FIELDS
    if ignored:
        logger.debug(f"merge_script_patch: ignoring read-only fields {sorted(ignored)}")

    record = script.to_record()
    for key in _REPLACE_FIELDS & set(patch):
        record[key] = patch[key]
    for key in _MERGE_FIELDS & set(patch):
        value = patch[key]
        if isinstance(value, dict):
            record[key] = {**(record.get(key) or {}), **value}
        else:
            record[key] = value

    return Script.from_record(record, script_id=script.id)


def _parse_time_range(time_range: str) -> Optional[timedelta]:
    """'all' -> None, '30d' / '12h' / '2w' -> timedelta. Anything else is a ValidationError."""
    if time_range in (None, '', 'all'):
        return None
    match = _TIME_RANGE_RE.match(str(time_range))
    if not match:
        raise ValidationError([f"Invalid time range: {time_range!r} (use 'all' or e.g. 7d, 12h, 2w)"])
    amount, unit = match.groups()
    return timedelta(**{_TIME_UNITS[unit]: int(amount)})


class ScriptService:
    """
    Script lifecycle against a document store.

    Args:
        store: any DocumentStore (PostgresDocumentStore in production)
        catalog: TemplateCatalog used to seed scripts; the built-in one if omitted
        bus: EventBus for lifecycle events; the module singleton if omitted
        collection: document collection holding scripts
    """

    def __init__(
        self,
        store: DocumentStore,
        catalog: Optional[TemplateCatalog] = None,
        bus: Optional[EventBus] = None,
        collection: Optional[str] = None,
    ):
        self.store = store
        self.catalog = catalog if catalog is not None else TemplateCatalog()
        self.bus = bus if bus is not None else default_bus
        self.collection = collection or config.SCRIPTS_COLLECTION

    def __repr__(self):
        return f"ScriptService(collection={self.collection!r})"

    # =========================================================================
    # CREATE
    # =========================================================================

    def _build(self, data: Union[Script, Dict[str, Any]], owner_id: str) -> Script:
        """
        Turn caller data into an unsaved Script owned by owner_id.
        A Script instance is trusted as-is (version / lineage kept); a raw dict
        cannot set read-only fields.
        """
        if isinstance(data, Script):
            record = data.to_record()
        else:
            record = dict(data or {})
            ignored = set(record) & _READ_ONLY_FIELDS
            if ignored:
                logger.debug(f"create_script: ignoring read-only fields {sorted(ignored)}")
            for key in ignored:
                record.pop(key)

        now = utcnow()
        record.update({
            'created_by': owner_id,
            'created_at': now,
            'updated_at': now,
            'performance_metrics': baseline_metrics(),
        })
        return Script.from_record(record)

    @log_call
    def create_script(self, data: Union[Script, Dict[str, Any]], owner_id: str) -> Script:
        """
        Validate and persist a new script.
        Returns: the Script with its assigned id
        Raises: ValidationError (nothing written)
        """
        script = self._build(data, owner_id)

        result = script.validate()
        if not result.is_valid:
            raise ValidationError(result.errors)

        script.refresh_variables()
        script.id = self.store.create(self.collection, script.to_record())
        logger.info(f"Created script {script.id}: {script.name} (v{script.version})")

        self.bus.emit(EVENT_SCRIPT_CREATED, {'script_id': script.id, 'script': script})
        return script

    @log_call
    def create_from_template(
        self,
        script_type: str,
        objective: str,
        owner_id: str,
        name: str,
        **overrides: Any,
    ) -> Script:
        """
        Create a script seeded from the catalog template for (type, objective).
        Overrides may set any creatable field; a 'content' override is laid over
        the template content.
        Raises: NotFoundError when no such template exists
        """
        template = self.catalog.get_template(script_type, objective)
        if template is None:
            raise NotFoundError(f"No template for type={script_type} objective={objective}")

        content = {**template, **(overrides.pop('content', None) or {})}
        data = {**overrides, 'name': name, 'type': script_type, 'objective': objective, 'content': content}
        return self.create_script(data, owner_id)

    # =========================================================================
    # READ
    # =========================================================================

    @log_call
    def get_script(self, script_id: str, owner_id: Optional[str] = None) -> Script:
        """
        Fetch one script.
        Raises: NotFoundError if absent, AccessDeniedError if owner_id is given
        and does not own it
        """
        record = self.store.get(self.collection, script_id)
        if record is None:
            raise NotFoundError(f"Script {script_id} not found")

        script = Script.from_record(record, script_id=script_id)
        if owner_id is not None and script.created_by != owner_id:
            logger.warning(f"get_script: owner {owner_id!r} denied access to script {script_id}")
            raise AccessDeniedError(f"Access denied to script {script_id}")
        return script

    def _owner_query(self, owner_id: str, filters: Dict[str, Any], **kwargs) -> List[Script]:
        equality = {'created_by': owner_id}
        for key in _FILTER_FIELDS:
            if filters.get(key):
                equality[key] = filters[key]
        records = self.store.query(self.collection, filters=equality, **kwargs)
        return [Script.from_record(r, script_id=r['id']) for r in records]

    @log_call
    def get_scripts(self, owner_id: str, filters: Optional[Dict[str, Any]] = None) -> ScriptPage:
        """
        List an owner's scripts.

        Args:
            owner_id: created_by to match
            filters: optional type / status / industry / objective equality filters,
                order_by (default updated_at), order_direction (asc / desc, default desc),
                limit (default DEFAULT_PAGE_LIMIT), start_after (cursor script id)

        Returns: ScriptPage; has_more is True when a full page came back
        """
        filters = filters or {}
        order_by = filters.get('order_by') or 'updated_at'
        direction = (filters.get('order_direction') or 'desc').lower()

        errors = []
        if order_by not in _ORDER_FIELDS:
            errors.append(f"Cannot order scripts by {order_by!r}")
        if direction not in ('asc', 'desc'):
            errors.append(f"Order direction must be asc or desc, not {direction!r}")
        raw_limit = filters.get('limit')
        try:
            limit = config.DEFAULT_PAGE_LIMIT if raw_limit is None else int(raw_limit)
        except (TypeError, ValueError):
            errors.append(f"Limit must be a number, not {raw_limit!r}")
            limit = None
        if limit is not None and limit < 1:
            errors.append(f"Limit must be at least 1, not {limit}")
        if errors:
            raise ValidationError(errors)

        scripts = self._owner_query(
            owner_id, filters,
            order_by=order_by,
            direction=direction,
            limit=limit,
            start_after=filters.get('start_after'),
        )
        logger.debug(f"get_scripts: owner={owner_id} -> {len(scripts)} scripts")
        return ScriptPage(scripts=scripts, total=len(scripts), has_more=len(scripts) == limit)

    @log_call
    def get_script_versions(self, parent_id: str, owner_id: str) -> List[Script]:
        """Scripts versioned from parent_id, newest version first."""
        records = self.store.query(
            self.collection,
            filters={'parent_script_id': parent_id, 'created_by': owner_id},
            order_by='version',
            direction='desc',
        )
        return [Script.from_record(r, script_id=r['id']) for r in records]

    @log_call
    def search_scripts(self, owner_id: str, term: str, filters: Optional[Dict[str, Any]] = None) -> List[Script]:
        """
        Case-insensitive substring search over name, description and tags.
        Filters the owner's whole (filtered) set in memory; fine for per-owner
        libraries, not for large shared ones.
        """
        needle = (term or '').lower()
        matches = []
        for script in self._owner_query(owner_id, filters or {}, order_by='updated_at', direction='desc'):
            haystack = f"{script.name} {script.description} {' '.join(str(t) for t in script.tags)}".lower()
            if needle in haystack:
                matches.append(script)
        logger.debug(f"search_scripts: owner={owner_id} term={term!r} -> {len(matches)} matches")
        return matches

    @log_call
    def render_script(self, script_id: str, owner_id: str, values: Dict[str, Any]) -> Script:
        """Owner-checked fetch followed by variable substitution. Nothing is saved."""
        return self.get_script(script_id, owner_id).replace_variables(values)

    def get_templates(self, script_type: Optional[str] = None, objective: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.catalog.list_templates(script_type, objective)

    # =========================================================================
    # UPDATE / DELETE
    # =========================================================================

    @log_call
    def update_script(self, script_id: str, owner_id: str, patch: Dict[str, Any]) -> Script:
        """
        Apply a patch (see merge_script_patch), revalidate and save.
        performance_metrics is never written here.
        Raises: NotFoundError, AccessDeniedError, ValidationError (nothing written)
        """
        existing = self.get_script(script_id, owner_id)
        script = merge_script_patch(existing, patch or {})

        result = script.validate()
        if not result.is_valid:
            raise ValidationError(result.errors)

        script.refresh_variables()
        script.updated_at = utcnow()

        record = script.to_record()
        record.pop('performance_metrics')
        self.store.update(self.collection, script_id, record)
        logger.info(f"Updated script {script_id}: {sorted(patch or {})}")

        self.bus.emit(EVENT_SCRIPT_UPDATED, {'script_id': script_id, 'updates': dict(patch or {})})
        return script

    @log_call
    def delete_script(self, script_id: str, owner_id: str) -> None:
        """Hard delete. A second delete of the same id raises NotFoundError."""
        self.get_script(script_id, owner_id)
        self.store.delete(self.collection, script_id)
        logger.info(f"Deleted script {script_id}")
        self.bus.emit(EVENT_SCRIPT_DELETED, {'script_id': script_id})

    @log_call
    def update_metrics(self, script_id: str, metrics: Dict[str, Any]) -> Script:
        """
        Merge usage metrics into a script and stamp last_used / updated_at.
        Metrics are not content edits, so the script is not revalidated.
        Raises: NotFoundError, ValidationError for unknown metric names or
        non-numeric values
        """
        unknown = set(metrics or {}) - _SETTABLE_METRICS
        if unknown:
            raise ValidationError([f"Unknown metric fields: {', '.join(sorted(unknown))}"])
        not_numbers = sorted(
            k for k, v in (metrics or {}).items()
            if isinstance(v, bool) or not isinstance(v, (int, float))
        )
        if not_numbers:
            raise ValidationError([f"Metric {k} must be a number" for k in not_numbers])

        record = self.store.get(self.collection, script_id)
        if record is None:
            raise NotFoundError(f"Script {script_id} not found")

        script = Script.from_record(record, script_id=script_id)
        script.update_metrics(metrics)

        stored = script.to_record()
        self.store.update(self.collection, script_id, {
            'performance_metrics': stored['performance_metrics'],
            'updated_at': stored['updated_at'],
        })
        logger.info(f"Updated metrics for script {script_id}: {sorted(metrics or {})}")

        self.bus.emit(EVENT_SCRIPT_METRICS_UPDATED, {'script_id': script_id, 'metrics': dict(metrics or {})})
        return script

    # =========================================================================
    # COPIES AND VERSIONS
    # =========================================================================

    @log_call
    def duplicate_script(self, script_id: str, owner_id: str, new_name: Optional[str] = None) -> Script:
        """Fresh, lineage-free copy (version 1, zero metrics) under a new id."""
        source = self.get_script(script_id, owner_id)

        clone = Script.from_record(source.to_record())
        clone.id = None
        clone.parent_script_id = None
        clone.version = 1
        clone.name = new_name or f"{source.name} (Copy)"

        duplicate = self.create_script(clone, owner_id)
        self.bus.emit(EVENT_SCRIPT_DUPLICATED, {'script_id': duplicate.id, 'source_id': script_id})
        return duplicate

    @log_call
    def create_version(self, script_id: str, owner_id: str) -> Script:
        """Persist the next version of a script, pointing back at it."""
        source = self.get_script(script_id, owner_id)
        version = self.create_script(source.create_version(), owner_id)
        self.bus.emit(EVENT_SCRIPT_VERSIONED, {
            'script_id': version.id,
            'parent_script_id': script_id,
            'version': version.version,
        })
        return version

    # =========================================================================
    # REPORTING
    # =========================================================================

    @log_call
    def get_analytics(self, owner_id: str, time_range: str = 'all') -> Dict[str, Any]:
        """
        Aggregate an owner's scripts updated within time_range.

        Args:
            time_range: 'all', or a window such as '30d', '12h', '2w'

        Returns: dict with status counts, by_type counts, performance averages
        and the top performers by success rate
        """
        window = _parse_time_range(time_range)
        scripts = self._owner_query(owner_id, {})
        if window is not None:
            since = utcnow() - window
            scripts = [s for s in scripts if s.updated_at >= since]

        count = len(scripts)
        metrics = [s.performance_metrics for s in scripts]

        def _average(key):
            return sum(m.get(key) or 0 for m in metrics) / count if count else 0

        ranked = sorted(scripts, key=lambda s: s.performance_metrics.get('success_rate') or 0, reverse=True)

        analytics = {
            'time_range': time_range or 'all',
            'total_scripts': count,
            **{
                f"{status}_scripts": sum(1 for s in scripts if s.status == status)
                for status in SCRIPT_STATUSES
            },
            'by_type': {t: sum(1 for s in scripts if s.type == t) for t in SCRIPT_TYPES},
            'performance': {
                'total_uses': sum(m.get('total_uses') or 0 for m in metrics),
                'average_success_rate': _average('success_rate'),
                'average_conversion_rate': _average('conversion_rate'),
            },
            'top_performing': [
                {
                    'id': s.id,
                    'name': s.name,
                    'success_rate': s.performance_metrics.get('success_rate') or 0,
                    'total_uses': s.performance_metrics.get('total_uses') or 0,
                }
                for s in ranked[:config.ANALYTICS_TOP_N]
            ],
        }
        logger.debug(f"get_analytics: owner={owner_id} range={time_range} -> {count} scripts")
        return analytics

    def health_check(self) -> Dict[str, Any]:
        """Probe the store with a one-row query. Store failures report unhealthy."""
        status = {'timestamp': utcnow().isoformat(), 'service': 'ScriptService'}
        try:
            self.store.query(self.collection, limit=1)
        except StorageError as exc:
            logger.error(f"health_check: store unavailable: {exc}")
            return {**status, 'status': 'unhealthy', 'error': str(exc)}
        return {**status, 'status': 'healthy'}
