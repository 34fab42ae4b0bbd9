"""
Unified API response envelope
"""
from typing import Any, Dict, Optional

from flask import jsonify


class ApiResponse:
    """API response builder"""

    @staticmethod
    def success(data: Any = None, message: str = 'OK') -> tuple:
        """
        Success response

        Args:
            data: Response payload
            message: Human readable message

        Returns:
            (Flask Response, status code)
        """
        response = {
            'success': True,
            'message': message,
        }
        if data is not None:
            response['data'] = data
        return jsonify(response), 200

    @staticmethod
    def created(data: Any = None, message: str = 'Created') -> tuple:
        """201 response"""
        response = {
            'success': True,
            'message': message,
        }
        if data is not None:
            response['data'] = data
        return jsonify(response), 201

    @staticmethod
    def accepted(data: Any = None, message: str = 'Accepted') -> tuple:
        """202 response, work queued for later"""
        response = {
            'success': True,
            'message': message,
        }
        if data is not None:
            response['data'] = data
        return jsonify(response), 202

    @staticmethod
    def error(
        message: str,
        code: int = 400,
        error_code: str = 'BAD_REQUEST',
        details: Optional[Dict] = None
    ) -> tuple:
        """
        Error response

        Args:
            message: Error message
            code: HTTP status code
            error_code: Machine readable error code
            details: Field level details

        Returns:
            (Flask Response, status code)
        """
        response = {
            'success': False,
            'error': {
                'code': error_code,
                'message': message,
            }
        }
        if details:
            response['error']['details'] = details
        return jsonify(response), code

    @staticmethod
    def not_found(message: str = 'Resource not found') -> tuple:
        """404 response"""
        return ApiResponse.error(message, 404, 'NOT_FOUND')

    @staticmethod
    def validation_error(message: str, details: Optional[Dict] = None) -> tuple:
        """Validation error response"""
        return ApiResponse.error(message, 400, 'VALIDATION_ERROR', details)

    @staticmethod
    def server_error(message: str = 'Internal server error') -> tuple:
        """500 response"""
        return ApiResponse.error(message, 500, 'INTERNAL_ERROR')


def success_response(data: Any = None, message: str = 'OK') -> tuple:
    """Shortcut for a success response"""
    return ApiResponse.success(data, message)
