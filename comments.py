from flask import Blueprint
from sqlalchemy.orm import joinedload
from marshmallow import fields, validate, pre_load
from models import db, Comment
from auth import BaseSchema, auth_required, get_current_identity, get_request_json, load_or_raise
from tasks import parse_task_id, get_task_or_404, commit_or_raise
from errors import success_response
import logging

comments_bp = Blueprint('comments', __name__)
logger = logging.getLogger(__name__)

# ============================================
# 任務評論
# ============================================

class CreateCommentSchema(BaseSchema):
    """評論驗證 (先去掉前後空白再檢查長度)"""
    content = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=1000, error='Comment must be 1-1000 characters'),
        error_messages={'required': 'Comment content is required'}
    )

    @pre_load
    def strip_content(self, data, **kwargs):
        if isinstance(data, dict) and isinstance(data.get('content'), str):
            data = dict(data)
            data['content'] = data['content'].strip()
        return data


def list_comments(task_id):
    """任務的所有評論,新的在前"""
    get_task_or_404(task_id)
    return Comment.query.filter_by(task_id=task_id).options(
        joinedload(Comment.author)
    ).order_by(Comment.created_at.desc(), Comment.id.desc()).all()


def create_comment(task_id, author_id, data):
    """
    新增評論

    任何登入的使用者都可以對任何任務留言,不需要是任務擁有者
    """
    result = load_or_raise(CreateCommentSchema, data, 'Invalid comment data')
    task = get_task_or_404(task_id)

    comment = Comment(
        content=result['content'],
        task=task,
        author_id=author_id
    )
    db.session.add(comment)
    commit_or_raise('Failed to add comment')

    logger.info(f"Comment added to task {task_id} by user {author_id}")
    return comment


@comments_bp.route('/<task_id>/comments', methods=['GET'])
@auth_required
def get_task_comments(task_id):
    comments = list_comments(parse_task_id(task_id))
    return success_response([comment.to_dict() for comment in comments])


@comments_bp.route('/<task_id>/comments', methods=['POST'])
@auth_required
def create_task_comment(task_id):
    current_user = get_current_identity()
    comment = create_comment(parse_task_id(task_id), current_user['id'], get_request_json())
    return success_response(comment.to_dict(), message='Comment added successfully', status=201)
