from flask import Flask, request, jsonify, current_app
from werkzeug.exceptions import HTTPException
from sqlalchemy import text
from config import get_config
from models import db, utcnow
from errors import (ApiError, MissingToken, InvalidToken, ServerError,
                    error_response, success_response)
from extensions import jwt, bcrypt, cors, limiter
import logging
from logging.handlers import RotatingFileHandler
import os


# ============================================
# Logging 設定
# ============================================

def setup_logging(app):
    """
    production 才寫 log 檔:LOG_DIR 底下的 app.log (INFO) 和 error.log (ERROR)

    debug 和測試時只用 Flask 預設的 stderr handler
    """
    if app.debug or app.testing:
        return

    log_dir = app.config.get('LOG_DIR', 'logs')
    os.makedirs(log_dir, exist_ok=True)

    formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )

    # request、註冊、登入、任務異動
    info_handler = RotatingFileHandler(
        os.path.join(log_dir, 'app.log'),
        maxBytes=10240000,  # 10MB
        backupCount=10
    )
    info_handler.setLevel(logging.INFO)
    info_handler.setFormatter(formatter)

    # commit 失敗和未預期錯誤的 stack trace
    error_handler = RotatingFileHandler(
        os.path.join(log_dir, 'error.log'),
        maxBytes=10240000,  # 10MB
        backupCount=10
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    # blueprint 模組用 logging.getLogger(__name__),掛在 root logger 才收得到
    root_logger = logging.getLogger()
    root_logger.addHandler(info_handler)
    root_logger.addHandler(error_handler)
    root_logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    app.logger.info('Application startup')


# ============================================
# JWT 錯誤處理 (Authentication Guard 的 401)
# ============================================

def register_jwt_handlers(jwt):

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        """缺少 Authorization: Bearer header"""
        current_app.logger.warning(f"Unauthorized access attempt from: {request.remote_addr}, error: {error}")
        return error_response(MissingToken())

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        """簽章錯誤或格式錯誤的 token"""
        current_app.logger.warning(f"Invalid token attempt from: {request.remote_addr}, error: {error}")
        return error_response(InvalidToken())

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        """token 過期"""
        current_app.logger.warning(f"Expired token attempt from: {request.remote_addr}")
        return error_response(InvalidToken())


# ============================================
# 全域錯誤處理
# ============================================

def register_error_handlers(app):

    @app.errorhandler(ApiError)
    def handle_api_error(error):
        """validation / 權限 / 找不到資源,直接轉成 envelope"""
        if error.status_code >= 500:
            db.session.rollback()
        return error_response(error)

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            'success': False,
            'message': 'Route not found',
            'path': request.path
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            'success': False,
            'message': 'The HTTP method is not allowed for this endpoint'
        }), 405

    @app.errorhandler(429)
    def rate_limit_exceeded(error):
        app.logger.warning(f"Rate limit exceeded from: {request.remote_addr}")
        return jsonify({
            'success': False,
            'message': 'Too many requests. Please try again later.'
        }), 429

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        """
        處理所有未預期的錯誤

        這是最後的防線:rollback、記錄完整 stack trace,前端只看到通用訊息
        """
        if isinstance(error, HTTPException):
            return jsonify({
                'success': False,
                'message': error.description
            }), error.code

        db.session.rollback()
        app.logger.error(f"Unexpected error: {str(error)}", exc_info=True)
        return error_response(ServerError())


# ============================================
# Request/Response Logging
# ============================================

def register_request_hooks(app):

    @app.before_request
    def log_request():
        """記錄每個請求"""
        app.logger.info(f"Request: {request.method} {request.path} from {request.remote_addr}")

    @app.after_request
    def log_response(response):
        """記錄每個回應,加上 security headers"""
        app.logger.info(f"Response: {response.status_code} for {request.method} {request.path}")

        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-XSS-Protection'] = '1; mode=block'

        return response


# ============================================
# 初始化 Flask App
# ============================================

def create_app(config_class=None):
    """
    Application factory

    缺少 JWT_SECRET 會在這裡丟出 ConfigurationError,直接啟動失敗
    """
    config_class = config_class or get_config()
    config_class.validate()

    app = Flask(__name__)
    app.config.from_object(config_class)

    # 擴展初始化
    db.init_app(app)
    jwt.init_app(app)
    bcrypt.init_app(app)
    app.extensions['bcrypt'] = bcrypt
    limiter.init_app(app)

    # 不要用 '*',只允許設定好的來源
    cors.init_app(
        app,
        origins=app.config['CORS_ORIGINS'],
        methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
        allow_headers=['Content-Type', 'Authorization']
    )

    setup_logging(app)
    register_jwt_handlers(jwt)
    register_error_handlers(app)
    register_request_hooks(app)

    # 註冊 Blueprints
    from auth import auth_bp
    from tasks import tasks_bp
    from comments import comments_bp
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(tasks_bp, url_prefix='/api/tasks')
    app.register_blueprint(comments_bp, url_prefix='/api/tasks')

    register_core_routes(app)

    # 資料庫初始化
    with app.app_context():
        db.create_all()
        app.logger.info('Database tables created')

    return app


def register_core_routes(app):

    @app.route('/health', methods=['GET'])
    @limiter.exempt
    def health_check():
        """
        健康檢查端點

        用於 load balancer 或監控系統檢查服務是否正常
        """
        try:
            # 檢查資料庫連線
            db.session.execute(text('SELECT 1'))
        except Exception as e:
            app.logger.error(f"Health check failed: {str(e)}")
            return jsonify({
                'success': False,
                'message': 'Database connection failed',
                'data': {'status': 'unhealthy', 'database': 'disconnected'}
            }), 503

        return success_response({
            'status': 'healthy',
            'database': 'connected',
            'timestamp': utcnow().isoformat()
        })

    @app.route('/')
    def home():
        """API 首頁"""
        return success_response({
            'name': app.config['API_NAME'],
            'version': app.config['API_VERSION'],
            'endpoints': {
                'health': {'path': '/health', 'methods': ['GET']},
                'auth': {
                    'register': {'path': '/api/auth/register', 'methods': ['POST']},
                    'login': {'path': '/api/auth/login', 'methods': ['POST']},
                    'me': {'path': '/api/auth/me', 'methods': ['GET']}
                },
                'tasks': {
                    'list': {'path': '/api/tasks', 'methods': ['GET', 'POST']},
                    'detail': {'path': '/api/tasks/:id', 'methods': ['PUT', 'DELETE']},
                    'comments': {'path': '/api/tasks/:id/comments', 'methods': ['GET', 'POST']}
                }
            }
        })


# ============================================
# 啟動應用
# ============================================

if __name__ == '__main__':
    # 在 production 環境不要用 Flask 內建的 server
    # 應該用 gunicorn: gunicorn "app:create_app()"
    app = create_app()

    app.run(
        debug=app.config['DEBUG'],
        port=app.config['PORT'],
        host='0.0.0.0'  # 允許外部訪問
    )
