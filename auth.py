from functools import wraps
from flask import Blueprint, request, current_app, g
from flask_jwt_extended import create_access_token, jwt_required, get_jwt
from marshmallow import Schema, fields, validate, pre_load, ValidationError, EXCLUDE
from sqlalchemy.exc import IntegrityError
from models import db, User
from errors import (InvalidInput, DuplicateEmail, InvalidCredentials, ServerError,
                    flatten_validation_errors, success_response)
from extensions import limiter
import logging

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)


# ============================================
# Input Validation Schemas (用 marshmallow)
# ============================================

class BaseSchema(Schema):
    """不認識的欄位直接忽略,不報錯"""
    class Meta:
        unknown = EXCLUDE


class CredentialsSchema(BaseSchema):
    """email 欄位共用,一律轉小寫再驗證"""
    email = fields.Email(required=True, error_messages={
        'required': 'Email is required',
        'invalid': 'Invalid email format'
    })

    @pre_load
    def normalize_email(self, data, **kwargs):
        if isinstance(data, dict) and isinstance(data.get('email'), str):
            data = dict(data)
            data['email'] = data['email'].strip().lower()
        return data


class RegisterSchema(CredentialsSchema):
    """註冊輸入驗證"""
    name = fields.Str(
        required=True,
        validate=validate.Length(min=2, max=100, error='Name must be 2-100 characters'),
        error_messages={'required': 'Name is required'}
    )
    password = fields.Str(
        required=True,
        validate=validate.Length(min=6, max=100, error='Password must be 6-100 characters'),
        error_messages={'required': 'Password is required'}
    )


class LoginSchema(CredentialsSchema):
    """登入輸入驗證"""
    password = fields.Str(
        required=True,
        validate=validate.Length(min=1, error='Password is required'),
        error_messages={'required': 'Password is required'}
    )


# ============================================
# Helper Functions
# ============================================

def get_request_json():
    """body 不是 JSON 就當作空物件,交給 schema 回報缺少的欄位"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def load_or_raise(schema_class, data, message='Invalid input data'):
    """
    統一的輸入驗證函數

    一次回報所有錯誤的欄位,不是只回報第一個
    """
    try:
        return schema_class().load(data)
    except ValidationError as err:
        raise InvalidInput(message, errors=flatten_validation_errors(err.messages))


def get_bcrypt():
    """從 Flask app extensions 取得 bcrypt 實例 (不用 global variable)"""
    bcrypt = current_app.extensions.get('bcrypt')
    if bcrypt is None:
        logger.error("Bcrypt extension not loaded correctly.")
        raise ServerError('Server configuration error')
    return bcrypt


def hash_password(password):
    """bcrypt 加鹽雜湊,不可逆"""
    return get_bcrypt().generate_password_hash(password).decode('utf-8')


def check_password(password_hash, password):
    return get_bcrypt().check_password_hash(password_hash, password)


def issue_token(user):
    """
    產生 JWT access token

    payload: sub (user id), email, name, iat, exp (7 天)
    """
    return create_access_token(
        identity=str(user.id),
        additional_claims={'email': user.email, 'name': user.name}
    )

# ============================================
# Auth Gateway
# ============================================

def register_user(data):
    """
    註冊新使用者

    Returns:
        User: 新建立的使用者
    Raises:
        InvalidInput, DuplicateEmail, ServerError
    """
    result = load_or_raise(RegisterSchema, data, 'Invalid registration data')

    if User.query.filter_by(email=result['email']).first():
        raise DuplicateEmail()

    user = User(
        name=result['name'],
        email=result['email'],
        password_hash=hash_password(result['password'])
    )

    try:
        db.session.add(user)
        db.session.commit()
    except IntegrityError:
        # 兩個 request 同時註冊同一個 email, unique constraint 擋下來
        db.session.rollback()
        raise DuplicateEmail()
    except Exception as e:
        db.session.rollback()
        # 不要把 exception 細節洩漏給前端
        logger.error(f"Registration error for {result['email']}: {str(e)}", exc_info=True)
        raise ServerError('Registration failed due to server error')

    logger.info(f"New user registered: {user.email}")
    return user


def authenticate(data):
    """
    驗證帳號密碼並產生 token

    Returns:
        tuple: (token, user)
    Raises:
        InvalidInput, InvalidCredentials
    """
    result = load_or_raise(LoginSchema, data, 'Invalid login data')

    user = User.query.filter_by(email=result['email']).first()

    # 不要區分是 email 錯還是 password 錯,避免帳號枚舉攻擊
    if not user or not check_password(user.password_hash, result['password']):
        logger.warning(f"Failed login attempt for email: {result['email']}")
        raise InvalidCredentials()

    logger.info(f"User logged in: {user.email}")
    return issue_token(user), user

# ============================================
# Authentication Guard
# ============================================

def identity_from_claims(claims):
    """從 JWT claims 取出 {id, email, name}"""
    return {
        'id': int(claims['sub']),
        'email': claims.get('email'),
        'name': claims.get('name')
    }


def auth_required(fn):
    """
    需要登入的路由

    token 驗證失敗由 app.py 註冊的 JWT loaders 回傳 401。
    驗證成功就把 identity 放到 g.current_user,不再回頭查資料庫
    (使用者被刪除後 token 在過期前仍然有效)
    """
    @wraps(fn)
    @jwt_required()
    def wrapper(*args, **kwargs):
        g.current_user = identity_from_claims(get_jwt())
        return fn(*args, **kwargs)
    return wrapper


def get_current_identity():
    """取得當前 request 的使用者 identity (由 auth_required 設定)"""
    return g.get('current_user')

# ============================================
# 註冊 API
# ============================================

@auth_bp.route('/register', methods=['POST'])
@limiter.limit("5 per hour")
def register():
    """使用者註冊"""
    user = register_user(get_request_json())

    return success_response({
        'id': user.id,
        'name': user.name,
        'email': user.email,
        'created_at': user.created_at.isoformat()
    }, message='User registered successfully', status=201)

# ============================================
# 登入 API
# ============================================

@auth_bp.route('/login', methods=['POST'])
@limiter.limit("10 per minute")
def login():
    """使用者登入"""
    token, user = authenticate(get_request_json())

    return success_response({
        'token': token,
        'user': user.to_public_dict()
    }, message='Login successful')

# ============================================
# 取得當前使用者資訊
# ============================================

@auth_bp.route('/me', methods=['GET'])
@auth_required
def get_me():
    """回傳 token 裡的 identity"""
    return success_response(get_current_identity())
