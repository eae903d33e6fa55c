"""View functions for the field reports application.

This module wires the record screens together: the per-kind review tables
with their filters and approval controls, the report forms, the meal
evaluation results dashboard and the maintenance dashboard.  Records are read
from the local sheet snapshots; every write is handed to the background
dispatcher and the page moves on without waiting for the store.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from django.contrib import messages
from django.contrib.auth import authenticate, login, logout
from django.contrib.auth.decorators import login_required
from django.contrib.auth.models import User
from django.http import Http404, HttpRequest, HttpResponse
from django.shortcuts import redirect, render
from django.urls import reverse
from django.utils import timezone
from django.utils.http import urlencode
from django.views.decorators.http import require_http_methods, require_POST

from .forms import FORM_CLASSES, RECORD_ID_TAKEN, LoginForm
from .models import ActivityLog
from .permissions import user_is_reviewer
from .records import (
    FILTER_STATUSES,
    ApprovalStatus,
    FieldRecord,
    RecordKind,
    ReferenceData,
    generate_record_id,
    record_day_label,
    record_mosque_label,
    total_worshippers,
    work_count,
)
from .services.aggregation import ALL_MOSQUES, EVALUATOR_FIELD, summarise_evaluations
from .services.dispatch import get_dispatcher
from .services.export import build_workbook_bytes
from .services.filtering import FilterState, filter_records, search_records, sort_by_recency
from .services.record_cache import (
    RecordCacheError,
    load_reference,
    load_snapshot,
    refresh_reference,
    refresh_snapshot,
)
from .services.record_store import RecordStoreError, get_record_store
from .services.selection import SESSION_KEY, RecordSelection

logger = logging.getLogger(__name__)

BULK_ACTIONS: Dict[str, str] = {
    'approve': ApprovalStatus.APPROVE.value,
    'reject': ApprovalStatus.REJECTED.value,
}

MAINTENANCE_COUNT_FIELD = 'أعمال_الصيانة_عدد'
CLEANING_COUNT_FIELD = 'أعمال_النظافة_عدد'


def _get_lang(request: HttpRequest) -> str:
    """Return the preferred language code stored on the session."""

    return request.session.get('lang', 'ar')


def _localise_text(lang: str, english: str, arabic: str) -> str:
    """Return the appropriate string for the provided language code."""

    return english if lang == 'en' else arabic


def _build_breadcrumbs(lang: str, *segments: Tuple[str, Optional[str]]) -> List[Dict[str, str]]:
    """Construct a breadcrumb trail starting from the home page."""

    breadcrumbs: List[Dict[str, str]] = [
        {'label': _localise_text(lang, 'Home', 'الرئيسية'), 'url': reverse('home')}
    ]
    for label, url in segments:
        breadcrumbs.append({'label': label, 'url': url or ''})
    return breadcrumbs


def log_activity(user: User, action: str, details: str = '') -> None:
    """Create an audit entry for an action dispatched by ``user``."""

    ActivityLog.objects.create(user=user, action=action, details=details)


def _resolve_kind(kind: str) -> RecordKind:
    try:
        return RecordKind(kind)
    except ValueError:
        raise Http404(f'Unknown record kind: {kind}')


def _load_reference(request: HttpRequest) -> ReferenceData:
    """Mosque and day lists from the snapshot, downloading them once if absent."""

    try:
        reference = load_reference()
    except RecordCacheError as exc:
        logger.error("Reference snapshot unreadable: %s", exc)
        messages.error(request, str(exc))
        return ReferenceData()
    if reference.mosques or reference.days:
        return reference
    try:
        return refresh_reference(get_record_store())
    except RecordStoreError as exc:
        logger.warning("Reference data unavailable: %s", exc)
        return reference


def _load_records(request: HttpRequest, kind: RecordKind) -> List[FieldRecord]:
    """Records of ``kind`` from the snapshot; the first visit downloads the sheet."""

    lang = _get_lang(request)
    try:
        snapshot = load_snapshot(kind)
    except RecordCacheError as exc:
        logger.error("Snapshot for %s unreadable: %s", kind.value, exc)
        messages.error(request, str(exc))
        return []
    if snapshot.is_synced:
        return snapshot.records
    try:
        return refresh_snapshot(kind, get_record_store()).snapshot.records
    except RecordStoreError as exc:
        logger.warning("Could not load %s records: %s", kind.value, exc)
        messages.warning(
            request,
            _localise_text(lang, 'The record store could not be reached.', 'تعذر الاتصال بمصدر البيانات.'),
        )
        return []


def _session_selection(request: HttpRequest, kind: RecordKind) -> List[str]:
    stored = request.session.get(SESSION_KEY) or {}
    ids = stored.get(kind.value) if isinstance(stored, dict) else None
    return [str(value) for value in ids] if isinstance(ids, list) else []


def _store_selection(request: HttpRequest, kind: RecordKind, selection: RecordSelection) -> None:
    stored = dict(request.session.get(SESSION_KEY) or {})
    stored[kind.value] = selection.ids
    request.session[SESSION_KEY] = stored


def _visible_records(request: HttpRequest, kind: RecordKind, state: FilterState) -> List[FieldRecord]:
    return sort_by_recency(filter_records(_load_records(request, kind), state))


def _list_url(kind: RecordKind, state: FilterState) -> str:
    url = reverse('record_list', args=[kind.value])
    query = state.as_query()
    return f"{url}?{urlencode(query)}" if query else url


def _record_row(record: FieldRecord, reference: ReferenceData, selection: RecordSelection) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        'record': record,
        'record_id': record.record_id,
        'mosque': record_mosque_label(record, reference),
        'mosque_code': record.mosque_code,
        'day': record_day_label(record, reference),
        'status': record.effective_status,
        'tone': record.status_tone,
        'selected': record.record_id in selection,
    }
    if record.kind == RecordKind.ATTENDANCE:
        row['total'] = total_worshippers(record)
    elif record.kind == RecordKind.MAINTENANCE:
        row['maintenance_count'] = work_count(record, MAINTENANCE_COUNT_FIELD)
        row['cleaning_count'] = work_count(record, CLEANING_COUNT_FIELD)
    else:
        row['evaluator'] = record.get(EVALUATOR_FIELD) or ''
    return row


def login_view(request: HttpRequest) -> HttpResponse:
    """Authenticate a user via username and password."""
    if request.user.is_authenticated:
        return redirect('home')
    lang = _get_lang(request)
    if request.method == 'POST':
        form = LoginForm(request.POST)
        if form.is_valid():
            user = authenticate(
                username=form.cleaned_data['username'],
                password=form.cleaned_data['password'],
            )
            if user:
                login(request, user)
                return redirect('home')
            messages.error(
                request,
                _localise_text(lang, 'Invalid username or password.', 'اسم المستخدم أو كلمة المرور غير صحيحة.'),
            )
    else:
        form = LoginForm()
    return render(request, 'fieldreports/login.html', {'form': form, 'breadcrumbs': []})


def logout_view(request: HttpRequest) -> HttpResponse:
    """Log the user out and redirect to the login page."""
    logout(request)
    return redirect('login')


def toggle_language(request: HttpRequest, lang: str) -> HttpResponse:
    """Switch the interface language between Arabic and English."""
    if lang not in ('ar', 'en'):
        lang = 'ar'
    request.session['lang'] = lang
    return redirect(request.META.get('HTTP_REFERER', reverse('home')))


@login_required
def home(request: HttpRequest) -> HttpResponse:
    """Entry screen listing each record kind with its pending count."""
    lang = _get_lang(request)
    cards = []
    for kind in RecordKind:
        try:
            records = load_snapshot(kind).records
        except RecordCacheError as exc:
            logger.error("Snapshot for %s unreadable: %s", kind.value, exc)
            records = []
        pending = filter_records(records, FilterState(status=ApprovalStatus.PENDING.value))
        cards.append({
            'kind': kind,
            'label': kind.label,
            'total': len(records),
            'pending': len(pending),
        })
    return render(request, 'fieldreports/home.html', {
        'cards': cards,
        'breadcrumbs': _build_breadcrumbs(lang),
    })


@login_required
def record_list(request: HttpRequest, kind: str) -> HttpResponse:
    """Filterable table of records with approval controls for reviewers."""

    record_kind = _resolve_kind(kind)
    lang = _get_lang(request)
    reference = _load_reference(request)
    state = FilterState.from_query(request.GET)
    visible = _visible_records(request, record_kind, state)
    is_reviewer = user_is_reviewer(request.user)
    selection = RecordSelection(
        _session_selection(request, record_kind),
        visible_ids=[record.record_id for record in visible],
        can_edit_status=is_reviewer,
    )
    _store_selection(request, record_kind, selection)

    context = {
        'kind': record_kind,
        'rows': [_record_row(record, reference, selection) for record in visible],
        'filters': state,
        'filter_query': urlencode(state.as_query()),
        'mosques': reference.mosques,
        'days': reference.days,
        'statuses': FILTER_STATUSES,
        'is_reviewer': is_reviewer,
        'selected_count': len(selection),
        'all_selected': selection.all_selected,
        'breadcrumbs': _build_breadcrumbs(lang, (record_kind.label, '')),
    }
    return render(request, 'fieldreports/record_list.html', context)


@login_required
@require_POST
def record_selection(request: HttpRequest, kind: str) -> HttpResponse:
    """Apply a selection change or a bulk approval from the review table."""

    record_kind = _resolve_kind(kind)
    lang = _get_lang(request)
    state = FilterState.from_query(request.POST)
    visible = _visible_records(request, record_kind, state)
    selection = RecordSelection(
        _session_selection(request, record_kind),
        visible_ids=[record.record_id for record in visible],
        can_edit_status=user_is_reviewer(request.user),
    )

    action = request.POST.get('action', '')
    if action == 'toggle':
        selection.toggle(request.POST.get('record_id', ''))
    elif action == 'toggle_all':
        selection.toggle_all()
    elif action in BULK_ACTIONS:
        status = BULK_ACTIONS[action]
        ids = selection.ids
        dispatcher = get_dispatcher()
        dispatched = selection.bulk_update(
            status,
            lambda record_ids, target: dispatcher.update_status(record_kind, record_ids, target),
        )
        if dispatched is None:
            messages.info(request, _localise_text(lang, 'No records selected.', 'لم يتم تحديد أي سجل.'))
        else:
            log_activity(
                request.user,
                f'Bulk status {status}',
                f"{record_kind.value}: {', '.join(ids)}",
            )
            messages.success(
                request,
                _localise_text(
                    lang,
                    f'Status update sent for {len(ids)} records.',
                    f'تم إرسال تحديث الحالة لعدد {len(ids)} سجلات.',
                ),
            )
    else:
        messages.error(request, _localise_text(lang, 'Unknown action.', 'إجراء غير معروف.'))

    _store_selection(request, record_kind, selection)
    return redirect(_list_url(record_kind, state))


def _render_form(request: HttpRequest, kind: RecordKind, form, *, record: Optional[FieldRecord] = None) -> HttpResponse:
    lang = _get_lang(request)
    title = _localise_text(lang, 'Edit report', 'تعديل التقرير') if record else _localise_text(lang, 'New report', 'تقرير جديد')
    context = {
        'kind': kind,
        'form': form,
        'record': record,
        'errors': form.error_map if form.is_bound else {},
        # Failed submissions jump back to the top where the errors are listed.
        'scroll_to_top': bool(form.is_bound and form.errors),
        'breadcrumbs': _build_breadcrumbs(
            lang,
            (kind.label, reverse('record_list', args=[kind.value])),
            (title, ''),
        ),
    }
    return render(request, 'fieldreports/record_form.html', context)


def _dispatch_save(request: HttpRequest, record: FieldRecord, action: str) -> None:
    lang = _get_lang(request)
    get_dispatcher().save(record)
    log_activity(request.user, action, f"{record.kind.value}: {record.record_id}")
    messages.success(request, _localise_text(lang, 'Report sent.', 'تم إرسال التقرير.'))


def _is_new_record_id(kind: RecordKind, record_id: str, records: List[FieldRecord]) -> bool:
    """A posted id must carry the kind's prefix and must not name an existing record."""

    if not record_id.startswith(f"{kind.id_prefix}-"):
        return False
    return all(record.record_id != record_id for record in records)


@login_required
@require_http_methods(["GET", "POST"])
def record_create(request: HttpRequest, kind: str) -> HttpResponse:
    """Blank report form; the record id is generated when the form opens."""

    record_kind = _resolve_kind(kind)
    form_class = FORM_CLASSES[record_kind]
    reference = _load_reference(request)
    if request.method == 'POST':
        posted_id = request.POST.get('record_id', '').strip()
        if not _is_new_record_id(record_kind, posted_id, _load_records(request, record_kind)):
            logger.warning("Refusing to create %s record with id %r", record_kind.value, posted_id)
            data = request.POST.copy()
            data['record_id'] = generate_record_id(record_kind)
            form = form_class(data, reference=reference)
            form.is_valid()
            form.add_error(None, RECORD_ID_TAKEN)
            return _render_form(request, record_kind, form)
        form = form_class(request.POST, reference=reference)
        if form.is_valid():
            _dispatch_save(request, form.to_record(), 'Created report')
            return redirect('record_list', kind=record_kind.value)
        return _render_form(request, record_kind, form)
    form = form_class(initial={'record_id': generate_record_id(record_kind)}, reference=reference)
    return _render_form(request, record_kind, form)


@login_required
@require_http_methods(["GET", "POST"])
def record_edit(request: HttpRequest, kind: str, record_id: str) -> HttpResponse:
    """Edit an existing report; reviewers may also set its approval status."""

    record_kind = _resolve_kind(kind)
    form_class = FORM_CLASSES[record_kind]
    reference = _load_reference(request)
    record = next(
        (item for item in _load_records(request, record_kind) if item.record_id == record_id),
        None,
    )
    if record is None:
        raise Http404('Record not found')
    can_edit_status = user_is_reviewer(request.user)
    if request.method == 'POST':
        data = request.POST.copy()
        data['record_id'] = record.record_id
        form = form_class(data, reference=reference, can_edit_status=can_edit_status)
        if form.is_valid():
            _dispatch_save(request, form.to_record(existing=record), 'Updated report')
            return redirect('record_list', kind=record_kind.value)
        return _render_form(request, record_kind, form, record=record)
    form = form_class(
        initial=form_class.initial_from_record(record),
        reference=reference,
        can_edit_status=can_edit_status,
    )
    return _render_form(request, record_kind, form, record=record)


@login_required
def fast_eval_results(request: HttpRequest) -> HttpResponse:
    """Average rating per criterion, overall score and notes for a mosque."""

    lang = _get_lang(request)
    reference = _load_reference(request)
    mosque = request.GET.get('mosque') or ALL_MOSQUES
    summary = summarise_evaluations(
        _load_records(request, RecordKind.FAST_EVAL),
        mosque,
        reference=reference,
    )
    return render(request, 'fieldreports/fast_eval_results.html', {
        'summary': summary,
        'selected_mosque': mosque,
        'all_mosques': ALL_MOSQUES,
        'mosques': reference.mosques,
        'breadcrumbs': _build_breadcrumbs(
            lang,
            (_localise_text(lang, 'Meal evaluation results', 'نتائج تقييم الوجبات'), ''),
        ),
    })


@login_required
def maintenance_dashboard(request: HttpRequest) -> HttpResponse:
    """Maintenance and cleaning reports, newest first, searchable by mosque."""

    lang = _get_lang(request)
    reference = _load_reference(request)
    term = request.GET.get('q', '').strip()
    records = sort_by_recency(
        search_records(_load_records(request, RecordKind.MAINTENANCE), term, reference)
    )
    selection = RecordSelection(visible_ids=[record.record_id for record in records])
    return render(request, 'fieldreports/maintenance_dashboard.html', {
        'kind': RecordKind.MAINTENANCE,
        'rows': [_record_row(record, reference, selection) for record in records],
        'search_term': term,
        'is_reviewer': user_is_reviewer(request.user),
        'breadcrumbs': _build_breadcrumbs(
            lang,
            (_localise_text(lang, 'Maintenance & cleaning', 'لوحة الصيانة والنظافة'), ''),
        ),
    })


@login_required
def record_export(request: HttpRequest, kind: str) -> HttpResponse:
    """Download the filtered view of a record list as an Excel workbook."""

    record_kind = _resolve_kind(kind)
    reference = _load_reference(request)
    state = FilterState.from_query(request.GET)
    visible = _visible_records(request, record_kind, state)
    content = build_workbook_bytes(visible, reference, title=record_kind.sheet)
    timestamp = timezone.now().strftime('%Y%m%d-%H%M%S')
    response = HttpResponse(
        content,
        content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    )
    response['Content-Disposition'] = f'attachment; filename="{record_kind.value}-{timestamp}.xlsx"'
    return response

