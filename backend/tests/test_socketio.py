from betpool import socketio
from conftest import login, matches_of


def test_socket_connect_and_join_round(sio_client):
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'connected' for pkt in received)

    sio_client.emit('join_round', {'round_id': 1}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'joined' and pkt['args'][0]['room'] == 'round:1' for pkt in received)


def test_join_round_requires_round_id(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('join_round', {}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'error' for pkt in received)


def test_ping(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('ping', {'n': 1}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'pong' and pkt['args'][0] == {'n': 1} for pkt in received)


def test_settlement_pushes_ranking_update(flask_app, client, factory, sio_client):
    factory.user('admin', is_admin=True)
    round_ = factory.round(n_matches=2)
    match = matches_of(round_)[0]

    sio_client.emit('join_round', {'round_id': round_.id}, namespace='/ws')
    sio_client.get_received('/ws')

    login(client, 'admin')
    res = client.post(f'/api/matches/{match.id}/result', json={'home_score': 0, 'away_score': 0})
    assert res.status_code == 200

    events = sio_client.get_received('/ws')
    updates = [e for e in events if e['name'] == 'ranking_update']
    assert updates and updates[0]['args'][0] == {'round_id': round_.id, 'match_id': match.id}


def test_logged_in_user_receives_notifications(flask_app, factory):
    user = factory.user('alice')
    round_ = factory.round(n_matches=1)
    factory.ticket(user, round_, [('HOME', None, None)], paid=True)

    http = flask_app.test_client()
    login(http, 'alice')
    user_socket = socketio.test_client(flask_app, flask_test_client=http, namespace='/ws')
    user_socket.emit('join_user', {}, namespace='/ws')
    joined = user_socket.get_received('/ws')
    assert any(pkt['name'] == 'joined' and pkt['args'][0]['room'] == f'user:{user.id}' for pkt in joined)

    from betpool.services.settlement.coordinator import settle_match
    settle_match(matches_of(round_)[0].id, 1, 0)

    pushed = [e['args'][0] for e in user_socket.get_received('/ws') if e['name'] == 'notification']
    assert {n['type'] for n in pushed} == {'round_settled', 'prize_won'}
    user_socket.disconnect(namespace='/ws')


def test_join_user_requires_login(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('join_user', {}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert any(pkt['name'] == 'error' for pkt in received)
