"""Flask web interface for next-up."""

import logging
from concurrent.futures import TimeoutError as FutureTimeout

from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO, emit

from .config import config
from .errors import BackendError
from .models import get_session, ContinuationLog
from .runtime import PlaybackRuntime, SessionNotFound

# Initialize Flask app
app = Flask(__name__)
app.config['SECRET_KEY'] = config.SECRET_KEY
CORS(app)
socketio = SocketIO(app, cors_allowed_origins="*")

# Global reference to the playback runtime (set by app.py)
_runtime = None

logger = logging.getLogger(__name__)

def set_runtime(runtime: PlaybackRuntime):
    """Set the runtime whose sessions the API drives."""
    global _runtime
    _runtime = runtime

def broadcast_status(overlay):
    """Push a session snapshot to connected clients."""
    socketio.emit('status_update', overlay.to_dict())

def _error(message, code):
    return jsonify({'error': message}), code

def _call_runtime(operation, *args):
    """Run a runtime operation on the engine loop. Returns (overlay, error, status code)."""
    if _runtime is None or _runtime.loop is None:
        return None, 'Playback runtime not running', 503
    try:
        return _runtime.call(getattr(_runtime, operation)(*args)), None, 200
    except SessionNotFound:
        return None, 'No playback session for this viewer', 404
    except BackendError as e:
        logger.error(f"Backend error in {operation}: {e}")
        return None, e.message, 502
    except FutureTimeout:
        logger.error(f"Timed out waiting for {operation}")
        return None, 'Timed out', 504
    except Exception as e:
        logger.error(f"Error in {operation}: {e}", exc_info=True)
        return None, 'Internal error', 500

def _run(operation, *args):
    """Run a runtime operation and answer with the overlay."""
    overlay, error, code = _call_runtime(operation, *args)
    if error:
        return _error(error, code)
    return jsonify(overlay.to_dict())

def _viewer_id_from(data):
    viewer_id = (data or {}).get('viewer_id')
    if not viewer_id:
        raise ValueError('Missing required field: viewer_id')
    return viewer_id

@app.route('/api/status/<viewer_id>')
def get_status(viewer_id):
    """Get the overlay state of a viewer's session."""
    return _run("status", viewer_id)

# Session Management
@app.route('/api/sessions', methods=['POST'])
def open_session():
    """Open (or switch) the video a viewer is watching."""
    data = request.get_json(silent=True)
    if not data:
        return _error('No data provided', 400)

    required_fields = ['viewer_id', 'video_id']
    for field in required_fields:
        if field not in data or not data[field]:
            return _error(f'Missing required field: {field}', 400)

    logger.info(f"Opening {data['video_id']} for {data['viewer_id']}")
    return _run("open_video", data['viewer_id'], data['video_id'])

@app.route('/api/sessions/<viewer_id>/ended', methods=['POST'])
def media_ended(viewer_id):
    """The player reached the end of the video."""
    return _run("media_ended", viewer_id)

@app.route('/api/sessions/<viewer_id>/progress', methods=['POST'])
def report_progress(viewer_id):
    """Playback position report."""
    data = request.get_json(silent=True) or {}
    try:
        position = float(data['position'])
        duration = float(data['duration'])
    except (KeyError, TypeError, ValueError):
        return _error('position and duration must be numbers', 400)
    return _run("progress", viewer_id, position, duration)

# Continuation Control
@app.route('/api/sessions/<viewer_id>/cancel', methods=['POST'])
def cancel(viewer_id):
    """Dismiss the continuation overlay."""
    return _run("cancel", viewer_id)

@app.route('/api/sessions/<viewer_id>/play-now', methods=['POST'])
def play_now(viewer_id):
    """Skip the countdown."""
    return _run("play_now", viewer_id)

@app.route('/api/sessions/<viewer_id>/confirm', methods=['POST'])
def confirm(viewer_id):
    """Go to the proposed video after explicit confirmation."""
    return _run("confirm", viewer_id)

@app.route('/api/sessions/<viewer_id>/purchase', methods=['POST'])
def purchase(viewer_id):
    """Buy the locked current video."""
    return _run("purchase", viewer_id)

@app.route('/api/sessions/<viewer_id>/watch-later', methods=['POST'])
def watch_later(viewer_id):
    """Toggle the current video in the viewer's watch-later list."""
    return _run("watch_later", viewer_id)

# Continuation History
@app.route('/api/history')
def get_history():
    """Get recent continuation outcomes."""
    viewer_id = request.args.get('viewer_id')
    factory = _runtime.session_factory if _runtime else None
    with get_session(factory) as session:
        query = session.query(ContinuationLog)
        if viewer_id:
            query = query.filter_by(viewer_id=viewer_id)
        logs = query.order_by(ContinuationLog.id.desc()).limit(config.HISTORY_LIMIT).all()
        return jsonify([{
            'id': log.id,
            'viewer_id': log.viewer_id,
            'from_video_id': log.from_video_id,
            'target_video_id': log.target_video_id,
            'status': log.status,
            'outcome': log.outcome,
            'error_message': log.error_message,
            'created_at': log.created_at.isoformat() if log.created_at else None
        } for log in logs])

# WebSocket events
@socketio.on('connect')
def handle_connect():
    """Handle client connection."""
    logger.info("Client connected")
    emit('connected', {'message': 'Connected to next-up'})

@socketio.on('request_status')
def handle_status_request(data):
    """Handle status request for one viewer."""
    try:
        viewer_id = _viewer_id_from(data)
    except ValueError as e:
        emit('status_error', {'error': str(e)})
        return
    overlay, error, _ = _call_runtime("status", viewer_id)
    if error:
        emit('status_error', {'error': error})
        return
    emit('status_update', overlay.to_dict())
