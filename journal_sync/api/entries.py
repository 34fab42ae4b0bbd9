"""
Journal entries API

Local CRUD. Every write is applied to the local store immediately and
queued for the next sync.
"""
from flask import Blueprint, request

from ..components import get_components
from ..utils.logger import get_logger
from ..utils.responses import ApiResponse, success_response
from ..utils.validators import validate_entry_payload, validate_pagination

entries_bp = Blueprint('entries', __name__)
logger = get_logger('entries_api')


@entries_bp.route('/entries', methods=['GET'])
def list_entries():
    """
    List visible entries, newest date first

    Query:
        - page: page number (default 1)
        - page_size: entries per page (default 20, max 100)
    """
    is_valid, error_msg, page, page_size = validate_pagination(
        request.args.get('page'), request.args.get('page_size')
    )
    if not is_valid:
        return ApiResponse.validation_error(error_msg)

    try:
        entries, total = get_components().journal.list_entries(page=page, page_size=page_size)
        return success_response({
            'items': [entry.to_dict() for entry in entries],
            'total': total,
            'page': page,
            'page_size': page_size,
            'has_more': page * page_size < total,
        })
    except Exception as e:
        logger.error(f"Failed to list entries: {e}")
        return ApiResponse.server_error('Failed to list entries')


@entries_bp.route('/entries', methods=['POST'])
def create_entry():
    """
    Create an entry

    Request Body:
        - date: ISO date or datetime (required)
        - temperature: number
        - description: text, at most 2000 characters
        - photo_ref: photo reference
        - coords: {latitude, longitude} (or flat latitude/longitude)
    """
    is_valid, error_msg, fields = validate_entry_payload(request.get_json(silent=True))
    if not is_valid:
        return ApiResponse.validation_error(error_msg)

    try:
        entry = get_components().journal.create_entry(fields)
        return ApiResponse.created(entry.to_dict(), 'Entry created')
    except Exception as e:
        logger.error(f"Failed to create entry: {e}")
        return ApiResponse.server_error('Failed to create entry')


@entries_bp.route('/entries/<entry_id>', methods=['GET'])
def get_entry(entry_id):
    entry = get_components().journal.get_entry(entry_id)
    if entry is None:
        return ApiResponse.not_found('Entry not found')
    return success_response(entry.to_dict())


@entries_bp.route('/entries/<entry_id>', methods=['PUT'])
def update_entry(entry_id):
    """Partial update; only the supplied fields change."""
    is_valid, error_msg, fields = validate_entry_payload(request.get_json(silent=True), partial=True)
    if not is_valid:
        return ApiResponse.validation_error(error_msg)

    try:
        entry = get_components().journal.update_entry(entry_id, fields)
    except Exception as e:
        logger.error(f"Failed to update entry {entry_id}: {e}")
        return ApiResponse.server_error('Failed to update entry')

    if entry is None:
        return ApiResponse.not_found('Entry not found')
    return success_response(entry.to_dict(), 'Entry updated')


@entries_bp.route('/entries/<entry_id>', methods=['DELETE'])
def delete_entry(entry_id):
    try:
        deleted = get_components().journal.delete_entry(entry_id)
    except Exception as e:
        logger.error(f"Failed to delete entry {entry_id}: {e}")
        return ApiResponse.server_error('Failed to delete entry')

    if not deleted:
        return ApiResponse.not_found('Entry not found')
    return success_response({'id': entry_id}, 'Entry deleted')
