from phishtrainer.core.dedup import collect_existing_keys, dedupe, group_subjects_by_sender, identity_key


def test_nothing_persisted_keeps_everything_in_order(make_item):
    items = [make_item(subject=f"Report {i}") for i in range(4)]
    result = dedupe(items, set())
    assert result.new_items == items
    assert result.skipped_count == 0


def test_everything_persisted_drops_everything(make_item):
    items = [make_item(subject=f"Report {i}") for i in range(3)]
    result = dedupe(items, {identity_key(item) for item in items} | {("other@acme-corp.com", "x")})
    assert result.new_items == []
    assert result.skipped_count == 3


def test_repeats_within_batch_keep_first(make_item):
    first = make_item(subject="Same", explanation="first")
    second = make_item(subject="Same", explanation="second")
    other = make_item(subject="Different")
    result = dedupe([first, second, other], [])
    assert result.new_items == [first, other]
    assert result.skipped_count == 1


def test_same_subject_from_different_senders_is_not_a_duplicate(make_item):
    a = make_item(subject="Invoice", sender_email="billing@acme-corp.com")
    b = make_item(subject="Invoice", sender_email="billing@other-corp.com")
    assert dedupe([a, b], [("billing@acme-corp.com", "Invoice")]).new_items == [b]


def test_group_subjects_by_sender(make_item):
    items = [
        make_item(subject="A", sender_email="one@acme-corp.com"),
        make_item(subject="B", sender_email="two@acme-corp.com"),
        make_item(subject="C", sender_email="one@acme-corp.com"),
        make_item(subject="A", sender_email="one@acme-corp.com"),
    ]
    grouped = group_subjects_by_sender(items)
    assert grouped == {"one@acme-corp.com": ["A", "C"], "two@acme-corp.com": ["B"]}
    assert list(grouped) == ["one@acme-corp.com", "two@acme-corp.com"]


class RecordingRepository:
    def __init__(self, existing):
        self.existing = existing
        self.calls = []

    def find_existing_keys(self, senders, subjects_by_sender):
        self.calls.append((list(senders), dict(subjects_by_sender)))
        return {key for key in self.existing if key[0] in senders}


def test_collect_existing_keys_queries_once_per_batch(make_item):
    items = [
        make_item(subject="A", sender_email="one@acme-corp.com"),
        make_item(subject="B", sender_email="two@acme-corp.com"),
    ]
    repo = RecordingRepository({("one@acme-corp.com", "A")})
    assert collect_existing_keys(repo, items) == {("one@acme-corp.com", "A")}
    assert repo.calls == [(["one@acme-corp.com", "two@acme-corp.com"],
                           {"one@acme-corp.com": ["A"], "two@acme-corp.com": ["B"]})]


def test_collect_existing_keys_empty_batch_skips_lookup():
    repo = RecordingRepository(set())
    assert collect_existing_keys(repo, []) == set()
    assert repo.calls == []
