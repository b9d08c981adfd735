from flask import jsonify

# ============================================
# 錯誤類型 (API 邊界統一轉成 JSON envelope)
# ============================================

class ConfigurationError(RuntimeError):
    """啟動時的設定錯誤 (例如沒有設定 JWT_SECRET),不是 request 層級的錯誤"""


class ApiError(Exception):
    """所有 API 錯誤的基底類別"""
    status_code = 500
    message = 'Internal server error'

    def __init__(self, message=None, errors=None):
        super().__init__(message or self.message)
        if message:
            self.message = message
        self.errors = errors

    def to_dict(self):
        body = {'success': False, 'message': self.message}
        if self.errors:
            body['errors'] = self.errors
        return body


class InvalidInput(ApiError):
    status_code = 400
    message = 'Invalid input data'


class DuplicateEmail(ApiError):
    status_code = 400
    message = 'Email is already registered'


class InvalidCredentials(ApiError):
    # 不區分 email 錯還是 password 錯,避免帳號枚舉攻擊
    status_code = 401
    message = 'Invalid credentials'


class MissingToken(ApiError):
    status_code = 401
    message = 'Authentication token not provided'


class InvalidToken(ApiError):
    status_code = 401
    message = 'Invalid or expired token'


class Forbidden(ApiError):
    status_code = 403
    message = 'You do not have permission to modify this resource'


class NotFound(ApiError):
    status_code = 404
    message = 'Resource not found'


class ServerError(ApiError):
    status_code = 500
    message = 'An internal error occurred'


# ============================================
# Response helpers
# ============================================

def flatten_validation_errors(messages, prefix=''):
    """
    把 marshmallow 的 err.messages 轉成 [{field, message}] 列表

    marshmallow 格式: {'title': ['Too short'], '_schema': ['...']}
    巢狀欄位用 "." 串起來
    """
    errors = []
    if isinstance(messages, (list, tuple)):
        for message in messages:
            if isinstance(message, dict):
                errors.extend(flatten_validation_errors(message, prefix))
            else:
                errors.append({'field': prefix, 'message': str(message)})
        return errors

    for field, value in messages.items():
        name = '' if field == '_schema' else str(field)
        if prefix:
            name = f'{prefix}.{name}' if name else prefix
        if isinstance(value, dict):
            errors.extend(flatten_validation_errors(value, name))
        elif isinstance(value, (list, tuple)):
            errors.extend(flatten_validation_errors(value, name))
        else:
            errors.append({'field': name, 'message': str(value)})
    return errors


def success_response(data=None, message=None, status=200):
    body = {'success': True}
    if message:
        body['message'] = message
    if data is not None:
        body['data'] = data
    return jsonify(body), status


def error_response(error):
    return jsonify(error.to_dict()), error.status_code
