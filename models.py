from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine
from datetime import datetime, timezone
import sqlite3

db = SQLAlchemy()


@event.listens_for(Engine, 'connect')
def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite 預設不檢查 foreign key,每條連線都要打開"""
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()

# 任務狀態
TASK_STATUSES = ('pending', 'in_progress', 'completed')
DEFAULT_TASK_STATUS = 'pending'


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    return value.isoformat() if value else None

# ============================================
# 1. User 模型
# ============================================
class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # 關聯
    tasks = db.relationship('Task', backref='owner', lazy=True,
                            passive_deletes=True)
    comments = db.relationship('Comment', backref='author', lazy=True,
                               passive_deletes=True)

    def to_public_dict(self):
        """公開的使用者資訊 (絕對不包含 password_hash)"""
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email
        }

# ============================================
# 2. Task 模型
# ============================================
class Task(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=DEFAULT_TASK_STATUS)  # pending, in_progress, completed

    owner_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # 刪除任務時一起刪掉所有評論
    comments = db.relationship(
        'Comment', backref='task', lazy=True,
        cascade='all,delete-orphan',
        order_by=lambda: (Comment.created_at.desc(), Comment.id.desc())
    )

    # 索引
    __table_args__ = (
        db.Index('idx_task_owner_created', 'owner_id', 'created_at'),
    )

    def to_dict(self, include_comments=True):
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'status': self.status,
            'owner_id': self.owner_id,
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }
        if include_comments:
            data['comments'] = [comment.to_dict() for comment in self.comments]
        return data

# ============================================
# 3. Comment 模型
# ============================================
class Comment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    content = db.Column(db.Text, nullable=False)
    task_id = db.Column(db.Integer, db.ForeignKey('task.id', ondelete='CASCADE'), nullable=False)
    author_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        db.Index('idx_comment_task_created', 'task_id', 'created_at'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'content': self.content,
            'task_id': self.task_id,
            'author_id': self.author_id,
            'author': self.author.to_public_dict(),
            'created_at': isoformat(self.created_at),
            'updated_at': isoformat(self.updated_at)
        }
