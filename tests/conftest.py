from datetime import timedelta

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from main import app


@pytest.fixture
def db(monkeypatch):
    mock_db = mongomock.MongoClient()["bakery_test"]
    monkeypatch.setattr(database, "db", mock_db)
    return mock_db


@pytest.fixture
def client(db):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(db):
    """Insert a user directly, logged in with ``token`` unless ``expires_in`` says otherwise."""
    counter = {"n": 0}

    def _make(token="tok", expires_in=timedelta(hours=2), mileage=0, **fields):
        counter["n"] += 1
        doc = {
            "name": f"user{counter['n']}",
            "email": f"user{counter['n']}@example.com",
            "phone": "01012345678",
            "socialId": f"kakao_{counter['n']}",
            "socialToken": "provider-token",
            "token": token,
            "tokenExpiration": database.now() + expires_in,
            "mileage": mileage,
            "shippings": [],
            "orders": [],
            "cart": [],
        }
        doc.update(fields)
        return database.create_document("user", doc)

    return _make


@pytest.fixture
def menu_class(client):
    res = client.post("/menuclass", json={"name": "Bread", "intro": "Fresh every morning"})
    return res.json()["menuClass"]


@pytest.fixture
def make_menu(client, menu_class):
    def _make(name="Croissant", price=3500, **fields):
        body = {"name": name, "price": price, "tag": "best", "stock": 10,
                "menuClassId": menu_class["_id"]}
        body.update(fields)
        res = client.post("/menu", json=body)
        assert res.status_code == 200, res.json()
        return res.json()["menu"]

    return _make
