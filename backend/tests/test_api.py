def test_index(client):
    res = client.get('/')
    assert res.status_code == 200
    assert 'message' in res.get_json()


def test_hp_defaults_and_set(client):
    res = client.get('/api/hp?id=12')
    assert res.status_code == 200
    assert res.get_json() == {'hp': 100}

    res = client.post('/api/hp/set', json={'id': 12, 'hp': 35})
    assert res.get_json() == {'success': True}
    assert client.get('/api/hp?id=12').get_json() == {'hp': 35}


def test_hp_requires_id(client):
    res = client.get('/api/hp')
    assert res.status_code == 400
    assert 'error' in res.get_json()

    res = client.post('/api/hp/set', json={'id': 12})
    assert res.status_code == 400


def test_hp_reset_sets_every_listed_id(client):
    client.post('/api/hp/set', json={'id': 1, 'hp': 0})
    client.post('/api/hp/set', json={'id': 2, 'hp': 50})
    res = client.post('/api/hp/reset', json={'ids': [1, 2]})
    assert res.get_json() == {'success': True}
    assert client.get('/api/hp?id=1').get_json()['hp'] == 100
    assert client.get('/api/hp?id=2').get_json()['hp'] == 100

    assert client.post('/api/hp/reset', json={'ids': 'nope'}).status_code == 400


def test_wins_increment(client):
    assert client.get('/api/wins?id=3').get_json() == {'wins': 0}
    client.post('/api/wins/increment', json={'id': 3})
    res = client.post('/api/wins/increment', json={'id': 3})
    assert res.get_json()['wins'] == 2
    assert client.get('/api/wins?id=3').get_json() == {'wins': 2}


def test_attack_log_round_trip(client):
    for damage in range(12):
        res = client.post('/api/attack/log', json={
            'id': 4,
            'attack': {'attacker': 'alice', 'weapon': 'Sword', 'damage': damage, 'timestamp': 't'},
        })
        assert res.status_code == 200
    attacks = client.get('/api/attacks?id=4').get_json()['attacks']
    assert len(attacks) == 10
    assert attacks[0]['damage'] == 11

    assert client.post('/api/attack/log', json={'id': 4}).status_code == 400


def test_leaderboard(client):
    for pid in (1, 1, 2):
        client.post('/api/wins/increment', json={'id': pid})
    res = client.get('/api/leaderboard')
    assert res.status_code == 200
    assert res.get_json() == {'leaderboard': [
        {'id': 1, 'displayName': 'alice', 'wins': 2},
        {'id': 2, 'displayName': 'bob', 'wins': 1},
    ]}


def test_leaderboard_ignores_malformed_win_counters(client, flask_app):
    from arena import db
    from arena.models import KeyValue

    client.post('/api/wins/increment', json={'id': 3})
    db.session.add(KeyValue(key='wins:4', value='not-a-number'))
    db.session.commit()

    res = client.get('/api/leaderboard')
    assert res.status_code == 200
    assert res.get_json() == {'leaderboard': [{'id': 3, 'displayName': 'cara', 'wins': 1}]}


def test_legacy_action_endpoint(client):
    assert client.get('/api/redis/get-hp?fid=8').get_json() == {'hp': 100}
    assert client.post('/api/redis/set-hp', json={'fid': 8, 'hp': 20}).get_json() == {'success': True}
    assert client.get('/api/redis/get-hp?fid=8').get_json() == {'hp': 20}
    assert client.post('/api/redis/increment-wins', json={'fid': 8}).status_code == 200
    assert client.get('/api/redis/get-wins?fid=8').get_json() == {'wins': 1}

    res = client.post('/api/redis/explode', json={'fid': 8})
    assert res.status_code == 400
    assert res.get_json() == {'error': 'Invalid action'}
    # Read actions are GET-only
    assert client.post('/api/redis/get-hp', json={'fid': 8}).status_code == 400


def test_store_failure_maps_to_500(client, monkeypatch):
    from arena import db
    from sqlalchemy.exc import OperationalError

    def broken(*args, **kwargs):
        raise OperationalError('SELECT', {}, Exception('down'))

    monkeypatch.setattr(db.session, 'execute', broken)
    res = client.get('/api/hp?id=1')
    assert res.status_code == 500
    assert 'error' in res.get_json()


def test_weapons_catalog(client):
    assert client.get('/api/weapons').get_json() == {'weapons': ['Sword', 'Axe']}


def test_direct_attack(client, rng):
    rng.damages = [30]
    res = client.post('/api/attack', json={'attacker_id': 1, 'target_id': 2, 'weapon': 'Axe'})
    assert res.status_code == 200
    body = res.get_json()
    assert body['strike']['target_hp'] == 70
    assert body['announcements'] == ['alice attacked bob with Axe for 30 damage!']
    assert client.get('/api/hp?id=2').get_json() == {'hp': 70}


def test_session_flow(client, rng, tasks):
    res = client.post('/api/sessions', json={'player_id': 1})
    assert res.status_code == 201
    session = res.get_json()
    sid = session['id']
    assert session['state'] == 'active'
    assert [o['id'] for o in session['opponents']] == [3, 4, 2]

    rng.damages = [18]
    res = client.post(f'/api/sessions/{sid}/attack', json={'opponent_id': 3, 'weapon': 'Sword'})
    assert res.status_code == 200
    body = res.get_json()
    assert body['outcome']['strike']['damage'] == 18
    assert [o['hp'] for o in body['opponents'] if o['id'] == 3] == [82]

    res = client.post(f'/api/sessions/{sid}/opponents', json={'username': 'cara'})
    assert res.get_json()['result'] == 'already_opponent'
    res = client.post(f'/api/sessions/{sid}/opponents', json={'username': 'erin'})
    assert res.get_json()['result'] == 'added'
    res = client.post(f'/api/sessions/{sid}/opponents', json={'username': 'nobody'})
    assert res.get_json()['result'] == 'not_found'

    res = client.post(f'/api/sessions/{sid}/reset')
    assert res.get_json()['won'] is False
    assert all(o['hp'] == 100 for o in res.get_json()['opponents'])

    assert client.delete(f'/api/sessions/{sid}').get_json() == {'success': True}
    assert client.get(f'/api/sessions/{sid}').status_code == 404


def test_session_attack_validation(client):
    sid = client.post('/api/sessions', json={'player_id': 1}).get_json()['id']
    assert client.post(f'/api/sessions/{sid}/attack', json={'weapon': 'Sword'}).status_code == 400
    assert client.post(f'/api/sessions/{sid}/attack', json={'opponent_id': 99, 'weapon': 'Sword'}).status_code == 400
    assert client.post('/api/sessions', json={}).status_code == 400
    assert client.post('/api/sessions/missing/attack', json={'opponent_id': 3, 'weapon': 'Sword'}).status_code == 404


def test_attack_after_game_over_is_rejected(client, rng):
    client.post('/api/hp/set', json={'id': 1, 'hp': 10})
    sid = client.post('/api/sessions', json={'player_id': 1}).get_json()['id']
    rng.damages = [10, 10]
    rng.rolls = [0.0]
    body = client.post(f'/api/sessions/{sid}/attack', json={'opponent_id': 4, 'weapon': 'Sword'}).get_json()
    assert body['state'] == 'game_over'
    res = client.post(f'/api/sessions/{sid}/attack', json={'opponent_id': 4, 'weapon': 'Sword'})
    assert res.status_code == 409
