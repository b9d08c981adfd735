"""
Tests for task comments: any authenticated user may comment on any task.
"""

from models import Comment, User, db


class TestCreateComment:
    def test_any_user_may_comment_on_another_users_task(self, client, make_user, make_task):
        _, ana = make_user()
        bob_data, bob = make_user(name="Bob", email="bob@x.com")
        task = make_task(ana)

        resp = client.post(
            f"/api/tasks/{task['id']}/comments", json={"content": "Looks good"}, headers=bob
        )
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["content"] == "Looks good"
        assert data["task_id"] == task["id"]
        assert data["author"] == {"id": bob_data["id"], "name": "Bob", "email": "bob@x.com"}

    def test_content_is_trimmed(self, client, make_user, make_task):
        _, headers = make_user()
        task = make_task(headers)
        resp = client.post(
            f"/api/tasks/{task['id']}/comments", json={"content": "  padded  "}, headers=headers
        )
        assert resp.status_code == 201
        assert resp.get_json()["data"]["content"] == "padded"

    def test_whitespace_only_content_is_rejected(self, client, make_user, make_task):
        _, headers = make_user()
        task = make_task(headers)
        resp = client.post(
            f"/api/tasks/{task['id']}/comments", json={"content": "   "}, headers=headers
        )
        assert resp.status_code == 400
        assert resp.get_json()["errors"][0]["field"] == "content"

    def test_too_long_content_is_rejected(self, client, make_user, make_task):
        _, headers = make_user()
        task = make_task(headers)
        resp = client.post(
            f"/api/tasks/{task['id']}/comments", json={"content": "x" * 1001}, headers=headers
        )
        assert resp.status_code == 400

    def test_missing_task_is_not_found(self, client, make_user):
        _, headers = make_user()
        resp = client.post("/api/tasks/77/comments", json={"content": "hello"}, headers=headers)
        assert resp.status_code == 404
        assert resp.get_json()["message"] == "Task not found"

    def test_requires_authentication(self, client, make_user, make_task):
        _, headers = make_user()
        task = make_task(headers)
        resp = client.post(f"/api/tasks/{task['id']}/comments", json={"content": "hello"})
        assert resp.status_code == 401


class TestListComments:
    def test_lists_newest_first_with_authors(self, client, make_user, make_task):
        _, ana = make_user()
        _, bob = make_user(name="Bob", email="bob@x.com")
        task = make_task(ana)
        client.post(f"/api/tasks/{task['id']}/comments", json={"content": "one"}, headers=ana)
        client.post(f"/api/tasks/{task['id']}/comments", json={"content": "two"}, headers=bob)

        resp = client.get(f"/api/tasks/{task['id']}/comments", headers=bob)
        assert resp.status_code == 200
        comments = resp.get_json()["data"]
        assert [c["content"] for c in comments] == ["two", "one"]
        assert [c["author"]["name"] for c in comments] == ["Bob", "Ana Gómez"]

    def test_bad_id_shape_is_bad_request(self, client, make_user):
        _, headers = make_user()
        resp = client.get("/api/tasks/not-a-number/comments", headers=headers)
        assert resp.status_code == 400

    def test_missing_task_is_not_found(self, client, make_user):
        _, headers = make_user()
        resp = client.get("/api/tasks/5/comments", headers=headers)
        assert resp.status_code == 404


class TestStaleAuthor:
    def test_comment_by_deleted_user_is_not_persisted(self, client, app, make_user, make_task):
        _, ana = make_user()
        bob_data, bob = make_user(name="Bob", email="bob@x.com")
        task = make_task(ana)
        with app.app_context():
            db.session.delete(db.session.get(User, bob_data["id"]))
            db.session.commit()

        resp = client.post(
            f"/api/tasks/{task['id']}/comments", json={"content": "still here?"}, headers=bob
        )
        assert resp.status_code == 500
        assert resp.get_json() == {"success": False, "message": "Failed to add comment due to server error"}
        with app.app_context():
            assert Comment.query.count() == 0
