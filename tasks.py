from flask import Blueprint
from sqlalchemy.orm import selectinload
from marshmallow import fields, validate, validates_schema, ValidationError
from models import db, Task, Comment, TASK_STATUSES, DEFAULT_TASK_STATUS
from auth import BaseSchema, auth_required, get_current_identity, get_request_json, load_or_raise
from errors import InvalidInput, NotFound, Forbidden, ServerError, success_response
import logging

tasks_bp = Blueprint('tasks', __name__)
logger = logging.getLogger(__name__)

# ============================================
# Input Validation Schemas
# ============================================

def title_field(**kwargs):
    return fields.Str(
        validate=validate.Length(min=3, max=200, error='Title must be 3-200 characters'),
        **kwargs
    )


def description_field(**kwargs):
    return fields.Str(
        validate=validate.Length(min=10, max=2000, error='Description must be 10-2000 characters'),
        **kwargs
    )


def status_field(**kwargs):
    return fields.Str(
        validate=validate.OneOf(TASK_STATUSES, error='Status must be one of: ' + ', '.join(TASK_STATUSES)),
        **kwargs
    )


class CreateTaskSchema(BaseSchema):
    """建立任務驗證"""
    title = title_field(required=True, error_messages={'required': 'Task title is required'})
    description = description_field(required=True, error_messages={'required': 'Task description is required'})
    status = status_field(load_default=DEFAULT_TASK_STATUS)


class UpdateTaskSchema(BaseSchema):
    """更新任務驗證 (只更新有傳的欄位)"""
    title = title_field()
    description = description_field()
    status = status_field()

    @validates_schema
    def validate_not_empty(self, data, **kwargs):
        if not data:
            raise ValidationError('At least one field must be provided to update')

# ============================================
# 輔助函數
# ============================================

UPDATABLE_FIELDS = ('title', 'description', 'status')
MAX_ID = 2 ** 63 - 1


def parse_task_id(raw_id):
    """URL 裡的 id 必須是正整數"""
    if not (raw_id.isascii() and raw_id.isdigit()) or not 0 < int(raw_id) <= MAX_ID:
        raise InvalidInput('Invalid task id')
    return int(raw_id)


def get_task_or_404(task_id):
    task = db.session.get(Task, task_id)
    if not task:
        raise NotFound('Task not found')
    return task


def get_owned_task(task_id, user_id, action='modify'):
    """
    檢查任務存在且屬於當前使用者

    Raises:
        NotFound: 任務不存在
        Forbidden: 不是任務擁有者
    """
    task = get_task_or_404(task_id)
    if task.owner_id != user_id:
        logger.warning(f"User {user_id} tried to {action} task {task_id} owned by {task.owner_id}")
        raise Forbidden(f'You do not have permission to {action} this task')
    return task


def commit_or_raise(error_message):
    try:
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"{error_message}: {str(e)}", exc_info=True)
        raise ServerError(f'{error_message} due to server error')

# ============================================
# Ownership-Scoped CRUD
# ============================================

def list_tasks_for(user_id):
    """使用者自己的任務,新的在前,附上評論 (新的在前) 和評論作者"""
    return Task.query.filter_by(owner_id=user_id).options(
        selectinload(Task.comments).joinedload(Comment.author)
    ).order_by(Task.created_at.desc(), Task.id.desc()).all()


def create_task_for(user_id, data):
    result = load_or_raise(CreateTaskSchema, data, 'Invalid task data')

    task = Task(
        title=result['title'],
        description=result['description'],
        status=result['status'],
        owner_id=user_id
    )
    db.session.add(task)
    commit_or_raise('Task creation failed')

    logger.info(f"Task created: {task.id} by user {user_id}")
    return task


def update_task_for(user_id, task_id, data):
    """只有任務擁有者可以更新,只改有傳進來的欄位"""
    result = load_or_raise(UpdateTaskSchema, data, 'Invalid update data')
    task = get_owned_task(task_id, user_id, 'edit')

    for field in UPDATABLE_FIELDS:
        if field in result:
            setattr(task, field, result[field])

    commit_or_raise('Task update failed')

    logger.info(f"Task {task_id} updated by user {user_id}: {', '.join(sorted(result))}")
    return task


def delete_task_for(user_id, task_id):
    """刪除任務 (cascade 會在同一個 transaction 刪掉所有評論)"""
    task = get_owned_task(task_id, user_id, 'delete')

    db.session.delete(task)
    commit_or_raise('Task deletion failed')

    logger.info(f"Task deleted: {task_id} by user {user_id}")

# ============================================
# 查詢自己的所有任務
# ============================================

@tasks_bp.route('', methods=['GET'])
@auth_required
def get_tasks():
    current_user = get_current_identity()
    tasks = list_tasks_for(current_user['id'])
    return success_response([task.to_dict() for task in tasks])

# ============================================
# 建立任務
# ============================================

@tasks_bp.route('', methods=['POST'])
@auth_required
def create_task():
    current_user = get_current_identity()
    task = create_task_for(current_user['id'], get_request_json())
    return success_response(task.to_dict(), message='Task created successfully', status=201)

# ============================================
# 更新任務
# ============================================

@tasks_bp.route('/<task_id>', methods=['PUT'])
@auth_required
def update_task(task_id):
    current_user = get_current_identity()
    task = update_task_for(current_user['id'], parse_task_id(task_id), get_request_json())
    return success_response(task.to_dict(), message='Task updated successfully')

# ============================================
# 刪除任務
# ============================================

@tasks_bp.route('/<task_id>', methods=['DELETE'])
@auth_required
def delete_task(task_id):
    current_user = get_current_identity()
    delete_task_for(current_user['id'], parse_task_id(task_id))
    return success_response(message='Task deleted successfully')
