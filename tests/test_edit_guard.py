from triage.sync.edit_guard import ACTIVE_VIEW, EditGuard, detail_view


def test_guard_stays_active_until_every_field_is_closed():
    guard = EditGuard()
    view = detail_view("t-1")

    guard.begin(view, "comment")
    guard.begin(view, "status")
    guard.end(view, "comment")
    assert guard.is_active(view)
    assert guard.fields(view) == frozenset({"status"})

    guard.end(view, "status")
    assert not guard.is_active(view)
    assert not guard.is_active(ACTIVE_VIEW)


def test_cancel_and_context_manager():
    guard = EditGuard()

    with guard.editing(ACTIVE_VIEW, "note"):
        assert guard.is_active(ACTIVE_VIEW)
    assert not guard.is_active(ACTIVE_VIEW)

    guard.begin(ACTIVE_VIEW, "a")
    guard.begin(ACTIVE_VIEW, "b")
    guard.cancel(ACTIVE_VIEW)
    assert guard.fields(ACTIVE_VIEW) == frozenset()
    guard.end(ACTIVE_VIEW, "a")
