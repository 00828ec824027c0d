import pytest

from studio_scheduler import create_app, db, bcrypt
from studio_scheduler.models import User


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin(app):
    user = User(username='admin', password=bcrypt.generate_password_hash('admin').decode('utf-8'), permissions=1)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def auth_client(client, admin):
    response = client.post('/api/login', json={'username': 'admin', 'password': 'admin'})
    assert response.status_code == 200
    return client
