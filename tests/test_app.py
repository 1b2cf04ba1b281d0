import threading

import pytest

from drmario import app as server

run_tick_loop = server.ensure_bg

@pytest.fixture(autouse=True)
def clean_server(monkeypatch):
    monkeypatch.setattr(server, 'ensure_bg', lambda room: None)
    yield
    server.GAMES.clear()
    server.SESS.clear()
    server.LOBBY.clear()
    server.BG.clear()
    server.LOCKS.clear()

@pytest.fixture
def connect():
    clients = []
    def make():
        client = server.socketio.test_client(server.app)
        client.get_received()
        clients.append(client)
        return client
    yield make
    for client in clients:
        if client.is_connected():
            client.disconnect()

def received(client, name):
    return [msg['args'][0] for msg in client.get_received() if msg['name'] == name]

def test_health():
    resp = server.app.test_client().get('/health')
    assert resp.status_code == 200
    assert resp.get_json() == {'status': 'healthy', 'rooms': 0}

def test_create_and_join_room(connect):
    host, guest = connect(), connect()
    host.emit('create_room', {'room': 'ABCD'})
    assert received(host, 'joined') == [{'room': 'ABCD', 'player': 1}]
    guest.emit('join_room', {'room': 'ABCD'})
    assert received(guest, 'joined') == [{'room': 'ABCD', 'player': 2}]
    assert server.players_in('ABCD') == [1, 2]

def test_room_errors(connect):
    host, guest, third = connect(), connect(), connect()
    guest.emit('join_room', {'room': 'NOPE'})
    assert received(guest, 'error') == [{'message': 'Room does not exist.'}]
    host.emit('create_room', {'room': 'ABCD'})
    third.emit('create_room', {'room': 'ABCD'})
    assert received(third, 'error') == [{'message': 'Room already exists.'}]
    guest.emit('join_room', {'room': 'ABCD'})
    third.emit('join_room', {'room': 'ABCD'})
    assert received(third, 'error') == [{'message': 'Room is full.'}]

def test_start_needs_two_players(connect):
    host = connect()
    host.emit('create_room', {'room': 'ABCD'})
    host.get_received()
    host.emit('start')
    assert received(host, 'error') == [{'message': 'Waiting for opponent.'}]
    assert server.GAMES['ABCD'].phase == 'LOBBY'

def test_input_outside_a_room(connect):
    client = connect()
    client.emit('input', {'action': 'move_left'})
    assert received(client, 'error') == [{'message': 'Not in a room.'}]

def test_start_and_play(connect):
    host, guest = connect(), connect()
    host.emit('create_room', {'room': 'ABCD'})
    guest.emit('join_room', {'room': 'ABCD'})
    host.get_received()
    host.emit('start')
    states = received(host, 'state')
    assert states and states[-1]['phase'] == 'PLAYING'
    host.emit('start')
    assert received(host, 'error') == [{'message': 'Game already started.'}]
    host.emit('input', {'action': 'fly'})
    result = received(host, 'input_result')[0]
    assert result['ok'] is False and result['action'] == 'fly'

def test_lobby_pairs_two_clients(connect):
    first, second = connect(), connect()
    first.emit('join_lobby')
    assert received(first, 'info') == [{'message': 'Waiting for an opponent.'}]
    second.emit('join_lobby')
    one = first.get_received()
    joined = [m['args'][0] for m in one if m['name'] == 'joined']
    assert joined[0]['player'] == 1
    room = joined[0]['room']
    assert received(second, 'joined') == [{'room': room, 'player': 2}]
    assert server.GAMES[room].phase == 'PLAYING'
    assert server.LOBBY == []

def test_disconnect_closes_empty_room(connect):
    host = connect()
    host.emit('create_room', {'room': 'ABCD'})
    host.disconnect()
    assert 'ABCD' not in server.GAMES
    assert server.SESS == {}

def test_create_room_rejects_bad_rounds(connect):
    host = connect()
    host.emit('create_room', {'room': 'ABCD', 'rounds': 'many'})
    assert received(host, 'error') == [{'message': 'Invalid number of rounds.'}]
    host.emit('create_room', {'room': 'ABCD', 'rounds': 0})
    assert received(host, 'error') == [{'message': 'Invalid number of rounds.'}]
    assert 'ABCD' not in server.GAMES
    host.emit('create_room', {'room': 'ABCD', 'rounds': '3'})
    assert server.GAMES['ABCD'].rounds_to_win == 3

class ExplodingGame:
    phase = 'PLAYING'

    def __init__(self, lock):
        self.lock = lock
        self.lock_free_elsewhere = None

    def tick(self):
        seen = []
        contender = threading.Thread(target=lambda: seen.append(self.lock.acquire(blocking=False)))
        contender.start()
        contender.join()
        self.lock_free_elsewhere = seen[0]
        raise RuntimeError('tick failed')

def test_tick_loop_holds_the_room_lock_and_cleans_up(monkeypatch):
    monkeypatch.setattr(server.socketio, 'start_background_task', lambda target: target())
    game = ExplodingGame(server.room_lock('ROOM'))
    server.GAMES['ROOM'] = game
    with pytest.raises(RuntimeError):
        run_tick_loop('ROOM')
    assert game.lock_free_elsewhere is False
    assert 'ROOM' not in server.BG

def test_room_lock_is_per_room():
    assert server.room_lock('A') is server.room_lock('A')
    assert server.room_lock('A') is not server.room_lock('B')
