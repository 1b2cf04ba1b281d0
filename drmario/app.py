"""
Pill Duel - multiplayer server
Flask + Socket.IO backend: rooms, lobby matchmaking and a background loop
that ticks both boards of every running room and broadcasts their state.
"""

import logging
import random
import string
import threading
import time
from typing import Dict, List, Tuple

from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_socketio import SocketIO, emit, join_room, leave_room

from drmario import config
from drmario.random_stream import derive_seed
from drmario.session import SessionCoordinator

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config['SECRET_KEY'] = config.SECRET_KEY
CORS(app, origins="*")
# threading mode keeps us free of eventlet/gevent
socketio = SocketIO(app, cors_allowed_origins="*", async_mode='threading', ping_interval=25, ping_timeout=60)

GAME_CONFIG = config.GameConfig.from_env()

GAMES: Dict[str, SessionCoordinator] = {}   # room -> coordinator
SESS: Dict[str, Tuple[str, int]] = {}       # sid -> (room, player)
LOBBY: List[str] = []                       # sids waiting for a match
BG = {}                                     # room -> background task
LOCKS = {}                                  # room -> lock around its coordinator

def generate_room_code() -> str:
    return ''.join(random.choices(string.ascii_uppercase, k=4))

@app.route('/health')
def health():
    return jsonify({'status': 'healthy', 'rooms': len(GAMES)})

def room_lock(room):
    return LOCKS.setdefault(room, threading.RLock())

def broadcast(room):
    game = GAMES.get(room)
    if game is None:
        return
    with room_lock(room):
        events = game.drain_events()
        snapshot = game.snapshot()
    for name, data in events:
        socketio.emit(name, data, to=room)
    socketio.emit('state', snapshot, to=room)

def ensure_bg(room):
    if room in BG:
        return
    def loop():
        try:
            while True:
                game = GAMES.get(room)
                if game is None or game.phase != 'PLAYING':
                    break
                with room_lock(room):
                    game.tick()
                broadcast(room)
                socketio.sleep(GAME_CONFIG.tick_seconds)
        finally:
            BG.pop(room, None)
    BG[room] = socketio.start_background_task(loop)

def players_in(room) -> List[int]:
    return sorted(pid for r, pid in SESS.values() if r == room)

def start_game(room):
    game = GAMES[room]
    with room_lock(room):
        game.start(seed=derive_seed(room, time.time()))
    logger.info('room %s: game started', room)
    ensure_bg(room)
    broadcast(room)

@socketio.on('connect')
def handle_connect():
    logger.info('client connected: %s', request.sid)
    emit('connected', {'session_id': request.sid})

@socketio.on('create_room')
def create_room(data):
    data = data or {}
    room = data.get('room') or generate_room_code()
    if room in GAMES:
        emit('error', {'message': 'Room already exists.'}); return
    try:
        rounds = int(data.get('rounds', GAME_CONFIG.rounds_to_win))
    except (TypeError, ValueError):
        emit('error', {'message': 'Invalid number of rounds.'}); return
    if rounds < 1:
        emit('error', {'message': 'Invalid number of rounds.'}); return
    GAMES[room] = SessionCoordinator(room, GAME_CONFIG, rounds_to_win=rounds)
    join_room(room)
    SESS[request.sid] = (room, 1)
    logger.info('room %s created by %s', room, request.sid)
    emit('joined', {'room': room, 'player': 1})
    broadcast(room)

@socketio.on('join_room')
def join_room_evt(data):
    data = data or {}
    room = data.get('room', '')
    if room not in GAMES:
        emit('error', {'message': 'Room does not exist.'}); return
    if 2 in players_in(room):
        emit('error', {'message': 'Room is full.'}); return
    join_room(room)
    SESS[request.sid] = (room, 2)
    emit('joined', {'room': room, 'player': 2})
    socketio.emit('room_joined', {'room': room}, to=room)
    broadcast(room)

@socketio.on('join_lobby')
def join_lobby():
    if request.sid in LOBBY or request.sid in SESS:
        emit('error', {'message': 'Already waiting or playing.'}); return
    LOBBY.append(request.sid)
    logger.info('%s joined lobby (%d waiting)', request.sid, len(LOBBY))
    if len(LOBBY) < 2:
        emit('info', {'message': 'Waiting for an opponent.'}); return
    room = generate_room_code()
    while room in GAMES:
        room = generate_room_code()
    GAMES[room] = SessionCoordinator(room, GAME_CONFIG)
    for pid in (1, 2):
        sid = LOBBY.pop(0)
        join_room(room, sid=sid)
        SESS[sid] = (room, pid)
        socketio.emit('joined', {'room': room, 'player': pid}, to=sid)
    start_game(room)

@socketio.on('start')
def start_evt(data=None):
    sid = request.sid
    if sid not in SESS:
        emit('error', {'message': 'Not in a room.'}); return
    room, pid = SESS[sid]
    game = GAMES[room]
    with room_lock(room):
        if game.phase == 'PLAYING':
            emit('error', {'message': 'Game already started.'}); return
        if players_in(room) != [1, 2]:
            emit('error', {'message': 'Waiting for opponent.'}); return
        start_game(room)

@socketio.on('input')
def input_evt(data):
    sid = request.sid
    if sid not in SESS:
        emit('error', {'message': 'Not in a room.'}); return
    room, pid = SESS[sid]
    action = (data or {}).get('action', '')
    with room_lock(room):
        ok, msg = GAMES[room].command(pid, action)
    emit('input_result', {'action': action, 'ok': ok, 'message': msg})
    broadcast(room)

@socketio.on('request_state')
def request_state():
    sid = request.sid
    if sid not in SESS:
        emit('error', {'message': 'Not in a room.'}); return
    room, _ = SESS[sid]
    with room_lock(room):
        snapshot = GAMES[room].snapshot()
    emit('state', snapshot)

@socketio.on('disconnect')
def disc():
    sid = request.sid
    if sid in LOBBY:
        LOBBY.remove(sid)
    if sid not in SESS:
        return
    room, pid = SESS.pop(sid)
    leave_room(room)
    logger.info('player %s left room %s', pid, room)
    socketio.emit('info', {'message': f'Player {pid} disconnected.'}, to=room)
    if not players_in(room):
        GAMES.pop(room, None)
        LOCKS.pop(room, None)
        logger.info('room %s closed', room)

def main():
    logging.basicConfig(level=logging.INFO, format='[%(asctime)s] %(name)s - %(message)s')
    logger.info('Pill Duel server starting on port %d', config.PORT)
    socketio.run(app, host='0.0.0.0', port=config.PORT, debug=False, use_reloader=False,
                 allow_unsafe_werkzeug=True)

if __name__ == '__main__':
    main()
