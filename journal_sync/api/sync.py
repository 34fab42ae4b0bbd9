"""
Sync API

Triggering, status, queue inspection and the live event stream.
"""
import json

from flask import Blueprint, Response, request, stream_with_context

from ..components import get_components
from ..utils.logger import get_logger
from ..utils.responses import ApiResponse, success_response
from ..utils.validators import validate_force_full

sync_bp = Blueprint('sync', __name__)
logger = get_logger('sync_api')


@sync_bp.route('/sync', methods=['POST'])
def trigger_sync():
    """
    Queue an immediate sync

    Request Body:
        - force_full: bool (optional)

    The run happens on the scheduler thread; poll /sync/status for the result.
    """
    data = request.get_json(silent=True) or {}
    is_valid, error_msg, force_full = validate_force_full(data.get('force_full'))
    if not is_valid:
        return ApiResponse.validation_error(error_msg)

    components = get_components()
    sync_request = components.scheduler.request_immediate(force_full=force_full, reason='api')
    return ApiResponse.accepted({
        'request': sync_request.to_dict(),
        'scheduler_running': components.scheduler.running,
        'authenticated': components.session_store.is_authenticated(),
    }, 'Sync queued')


@sync_bp.route('/sync/status', methods=['GET'])
def sync_status():
    try:
        components = get_components()
        data = components.scheduler.status()
        data.update({
            'session': components.session_store.to_dict(),
            'connected': components.connectivity.is_connected(),
            'queue': components.queue.stats(),
            'unsynced_count': components.records.count_unsynced(),
        })
        return success_response(data)
    except Exception as e:
        logger.error(f"Failed to read sync status: {e}")
        return ApiResponse.server_error('Failed to read sync status')


@sync_bp.route('/sync/queue', methods=['GET'])
def sync_queue():
    """Operations waiting for the next drain, oldest first."""
    try:
        operations = get_components().queue.pending_operations()
        return success_response(
            [operation.to_dict() for operation in operations],
            message=f'{len(operations)} queued operation(s)'
        )
    except Exception as e:
        logger.error(f"Failed to read sync queue: {e}")
        return ApiResponse.server_error('Failed to read sync queue')


@sync_bp.route('/sync/events', methods=['GET'])
def sync_events():
    """
    SSE endpoint streaming sync events

    Format:
        data: {"type": "...", "timestamp": "...", "level": "info|warn|error", "message": "..."}
    """
    client_id, generator = get_components().notifier.subscribe()

    def generate():
        hello = {'type': 'connected', 'level': 'info', 'message': 'Sync event stream connected', 'client_id': client_id}
        yield f"data: {json.dumps(hello)}\n\n"
        yield from generator

    return Response(
        stream_with_context(generate()),
        mimetype='text/event-stream',
        headers={
            'Cache-Control': 'no-cache',
            'Connection': 'keep-alive',
            'X-Accel-Buffering': 'no',
        }
    )
