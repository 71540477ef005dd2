import pytest
from sqlalchemy.exc import OperationalError

from arena import db
from arena.errors import StoreUnavailable, ValidationError
from arena.models import KeyValue


def test_missing_keys_read_as_defaults(store):
    assert store.get_hp(42) == 100
    assert store.get_wins(42) == 0
    assert store.get_recent_attacks(42) == []
    assert store.list_winner_ids() == set()


def test_set_hp_overwrites_without_clamping(store):
    store.set_hp(7, 55)
    assert store.get_hp(7) == 55
    store.set_hp(7, 140)
    assert store.get_hp(7) == 140
    assert db.session.get(KeyValue, 'hp:7').value == '140'


def test_set_hp_rejects_non_integers(store):
    with pytest.raises(ValidationError):
        store.set_hp(7, '50')
    with pytest.raises(ValidationError):
        store.set_hp(7, True)


def test_reset_hp_is_idempotent(store):
    store.set_hp(1, 0)
    store.set_hp(2, 73)
    store.reset_hp([1, 2, 3])
    assert [store.get_hp(i) for i in (1, 2, 3)] == [100, 100, 100]
    store.reset_hp([1, 2, 3])
    assert [store.get_hp(i) for i in (1, 2, 3)] == [100, 100, 100]


def test_compare_and_set_hp(store):
    # Absent key behaves like 100
    assert store.compare_and_set_hp(9, 100, 80) is True
    assert store.get_hp(9) == 80
    assert store.compare_and_set_hp(9, 100, 50) is False
    assert store.get_hp(9) == 80
    assert store.compare_and_set_hp(9, 80, 60) is True
    assert store.get_hp(9) == 60
    # Absent key does not match anything but 100
    assert store.compare_and_set_hp(10, 90, 70) is False
    assert store.get_hp(10) == 100


def test_increment_wins_creates_and_counts(store):
    assert store.increment_wins(5) == 1
    assert store.increment_wins(5) == 2
    assert store.get_wins(5) == 2
    assert db.session.get(KeyValue, 'wins:5').value == '2'


def test_list_winner_ids_skips_zero_counters(store):
    store.increment_wins(1)
    store.increment_wins(3)
    db.session.add(KeyValue(key='wins:8', value='0'))
    db.session.commit()
    assert store.list_winner_ids() == {1, 3}


def test_list_winner_ids_skips_non_integer_counters(store):
    store.increment_wins(2)
    db.session.add(KeyValue(key='wins:6', value='lots'))
    db.session.add(KeyValue(key='wins:abc', value='3'))
    db.session.commit()
    assert store.list_winner_ids() == {2}


def test_attack_log_keeps_newest_ten(store):
    for i in range(25):
        store.append_attack(4, {'attacker': f'p{i}', 'weapon': 'Sword', 'damage': i, 'timestamp': 't'})
    log = store.get_recent_attacks(4)
    assert len(log) == 10
    assert [entry['damage'] for entry in log] == list(range(24, 14, -1))
    # Other targets are unaffected
    assert store.get_recent_attacks(5) == []


def test_get_recent_attacks_honours_limit(store):
    for i in range(4):
        store.append_attack(4, {'attacker': 'x', 'weapon': 'Axe', 'damage': i, 'timestamp': 't'})
    assert [e['damage'] for e in store.get_recent_attacks(4, limit=2)] == [3, 2]


def test_backend_failure_raises_store_unavailable(store, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError('SELECT', {}, Exception('connection refused'))

    monkeypatch.setattr(db.session, 'execute', broken)
    with pytest.raises(StoreUnavailable):
        store.get_hp(1)
    with pytest.raises(StoreUnavailable):
        store.get_wins(1)
